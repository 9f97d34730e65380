"""Deterministic weighted-signal intent scorer."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from agentic_rag.context import RunContext
from agentic_rag.intent.models import (
    EXTERNAL_INTENTS,
    Complexity,
    Intent,
    IntentType,
    ScopeConstraint,
    Strategy,
    TimeConstraint,
)

KEYWORD_WEIGHT = 1.0
HOT_WORD_WEIGHT = 2.0
PATTERN_WEIGHT = 3.0
DOMAIN_WEIGHT = 1.5

MIN_CONFIDENCE = 0.3

_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class IntentRule:
    """Signals and routing hints for one intent.

    Several rules may share an intent type; the intent keeps the best score
    among them. Keep signal lists short: the hit-rate term of the score
    penalizes rules that define many signals.
    """

    intent_type: IntentType
    keywords: tuple[str, ...] = ()
    hot_words: tuple[str, ...] = ()
    patterns: tuple[re.Pattern[str], ...] = ()
    domain_keywords: tuple[str, ...] = ()
    weight: float = 1.0
    strategy: Strategy = "simple_rag"
    tools: tuple[str, ...] = ("rag",)
    estimated_steps: int = 1

    def __post_init__(self) -> None:
        self.keywords = tuple(k.lower() for k in self.keywords)
        self.hot_words = tuple(h.lower() for h in self.hot_words)
        self.domain_keywords = tuple(d.lower() for d in self.domain_keywords)

    @property
    def signal_count(self) -> int:
        return (
            len(self.keywords)
            + len(self.hot_words)
            + len(self.patterns)
            + len(self.domain_keywords)
        )

    @property
    def max_raw(self) -> float:
        return (
            len(self.keywords) * KEYWORD_WEIGHT
            + len(self.hot_words) * HOT_WORD_WEIGHT
            + len(self.patterns) * PATTERN_WEIGHT
            + len(self.domain_keywords) * DOMAIN_WEIGHT
        )


@dataclass(slots=True)
class SlotParser:
    name: str
    pattern: re.Pattern[str]


@dataclass(slots=True)
class RuleMatch:
    rule: IntentRule
    score: float
    hits: list[str] = field(default_factory=list)


def _p(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


def default_rules() -> list[IntentRule]:
    return [
        IntentRule(
            intent_type=IntentType.SIMPLE_QA,
            keywords=("什么是", "含义"),
            hot_words=("什么是", "是什么"),
            patterns=_p(r"^什么是.{1,30}$", r"^.{1,30}是什么[?？]?$"),
            weight=1.0,
            estimated_steps=1,
        ),
        IntentRule(
            intent_type=IntentType.SIMPLE_QA,
            keywords=("what is", "define", "explain", "meaning of"),
            hot_words=("what is", "what does"),
            patterns=_p(r"(?i)^(what is|what are|define|explain)\s+[\w\s\-]{1,40}\??$"),
            weight=1.0,
            estimated_steps=1,
        ),
        IntentRule(
            intent_type=IntentType.FACT_CHECK,
            keywords=("是否", "真的", "确认", "verify", "check", "是真的吗"),
            hot_words=("是不是", "对不对", "有没有"),
            patterns=_p(r"(?i)(is it true|verify|confirm)", r"是(真的|假的|对的|错的)"),
            weight=1.1,
            estimated_steps=2,
        ),
        IntentRule(
            intent_type=IntentType.MULTI_HOP_QA,
            keywords=("为什么", "原因", "如何", "怎么", "影响", "导致", "关系"),
            hot_words=("背后的原因", "如何实现", "工作原理", "为什么会"),
            patterns=_p(r"(为什么|why).*(导致|影响|实现|会)", r"(如何|how).*(实现|工作|运行)"),
            domain_keywords=("原理", "机制", "过程"),
            weight=1.2,
            strategy="react_agent",
            estimated_steps=3,
        ),
        IntentRule(
            intent_type=IntentType.CAUSAL_REASONING,
            keywords=("因为", "所以", "导致", "造成", "引起", "产生"),
            hot_words=("根本原因", "直接原因", "间接影响"),
            patterns=_p(r"(因为|because).*(所以|therefore)", r"(导致|cause|lead to).*(结果|result)"),
            weight=1.3,
            strategy="react_agent",
            estimated_steps=4,
        ),
        IntentRule(
            intent_type=IntentType.PROCEDURAL,
            keywords=("步骤", "如何做", "怎么做", "流程", "操作", "教程"),
            hot_words=("一步一步", "详细步骤", "操作指南"),
            patterns=_p(r"(如何|怎么)(做|操作|实现|配置)", r"(?i)(step by step|how to)"),
            weight=1.1,
            estimated_steps=2,
        ),
        IntentRule(
            intent_type=IntentType.COMPARISON,
            keywords=("对比", "比较", "区别", "差异", "compare", "difference", "vs", "versus"),
            hot_words=("哪个更好", "优缺点", "选择哪个", "异同点"),
            patterns=_p(
                r"(对比|比较|compare).*(和|与|vs|versus)",
                r"\w+\s+(vs|versus)\s+\w+",
                r"(优缺点|pros and cons)",
            ),
            weight=1.3,
            strategy="react_agent",
            estimated_steps=4,
        ),
        IntentRule(
            intent_type=IntentType.SUMMARIZATION,
            keywords=("总结", "概括", "summarize", "摘要", "归纳", "概述"),
            hot_words=("用一句话", "简要说明", "核心内容"),
            patterns=_p(r"(总结|summarize|概括).*(所有|全部|整个)", r"简要(说明|介绍|描述)"),
            weight=1.0,
            estimated_steps=2,
        ),
        IntentRule(
            intent_type=IntentType.AGGREGATION,
            keywords=("统计", "计算", "总共", "平均", "最大", "最小", "多少"),
            hot_words=("一共有", "总数", "数量"),
            patterns=_p(r"(统计|计算|count|sum).*(数量|总数|平均)", r"(?i)(有多少|how many)"),
            weight=1.4,
            strategy="react_agent",
            tools=("rag", "calculator"),
            estimated_steps=3,
        ),
        IntentRule(
            intent_type=IntentType.TREND_ANALYSIS,
            keywords=("趋势", "变化", "增长", "下降", "发展", "演变"),
            hot_words=("发展趋势", "变化趋势", "未来走向"),
            patterns=_p(r"(趋势|trend|变化|change).*(分析|analysis)", r"(增长|下降).*(率|速度)"),
            weight=1.3,
            strategy="react_agent",
            tools=("rag", "calculator"),
            estimated_steps=4,
        ),
        IntentRule(
            intent_type=IntentType.HYBRID_SEARCH,
            keywords=("最新", "最近", "当前", "现在", "latest", "current", "recent"),
            hot_words=("最新进展", "当前状态", "最近发生"),
            patterns=_p(
                r"(?i)(最新|latest|最近|recent).*(消息|进展|状态|新闻|news)",
                r"(?i)(当前|current|现在|now)",
            ),
            weight=1.4,
            strategy="hybrid",
            tools=("rag", "web_search"),
            estimated_steps=3,
        ),
        IntentRule(
            intent_type=IntentType.REALTIME_QUERY,
            keywords=("今天", "昨天", "明天", "现在", "实时", "当前"),
            hot_words=("实时数据", "最新数据", "当前值"),
            patterns=_p(r"(?i)(今天|昨天|明天|today|yesterday|tomorrow)", r"(?i)(实时|real-time|即时)"),
            weight=1.5,
            strategy="hybrid",
            tools=("rag", "web_search"),
            estimated_steps=2,
        ),
        IntentRule(
            intent_type=IntentType.CODE_GENERATION,
            keywords=("代码", "实现", "code", "implement", "写一个", "生成"),
            hot_words=("写代码", "代码示例", "实现代码"),
            patterns=_p(r"(?i)(写|生成|create).*(代码|code)", r"(?i)(implement|实现).*(function|函数|方法)"),
            domain_keywords=("python", "golang", "java", "javascript", "function", "class"),
            weight=1.2,
            strategy="react_agent",
            tools=("rag", "code_executor"),
            estimated_steps=3,
        ),
        IntentRule(
            intent_type=IntentType.CONTENT_CREATION,
            keywords=("写", "创作", "生成", "制作", "设计"),
            hot_words=("帮我写", "帮我生成", "创作一个"),
            patterns=_p(r"(?i)(写|创作|生成|create).*(文章|方案|报告|计划)", r"(?i)(帮我|help me).*(写|生成|create)"),
            weight=1.1,
            strategy="react_agent",
            estimated_steps=4,
        ),
        IntentRule(
            intent_type=IntentType.CLARIFICATION,
            keywords=("不太明白", "什么意思", "能详细", "具体", "再说一遍"),
            hot_words=("不太理解", "没听懂", "解释一下"),
            patterns=_p(r"(?i)(不(太)?(明白|理解|懂)|what do you mean)", r"(详细|具体|详细说明)"),
            weight=0.9,
            estimated_steps=1,
        ),
    ]


def default_slot_parsers() -> list[SlotParser]:
    return [
        SlotParser(
            name="time",
            pattern=re.compile(
                r"\d{4}[-/年]\d{1,2}[-/月]\d{1,2}日?|\d{1,2}[-/月]\d{1,2}日?"
                r"|今天|明天|昨天|上周|本月|去年|last week|yesterday|today|tomorrow"
                r"|\d+\s*(?:minutes?|hours?|days?|weeks?|months?|years?)\s*(?:ago|later|前|后)"
            ),
        ),
        SlotParser(name="number", pattern=re.compile(r"\d+(?:\.\d+)?|[一二三四五六七八九十百千万亿]+")),
        SlotParser(
            name="entity",
            pattern=re.compile(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*|[\u4e00-\u9fa5]{2,}"),
        ),
    ]


_EXTERNAL_KEYWORDS = ("最新", "实时", "latest", "current", "今天", "昨天", "now")

_DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "machine_learning": ("机器学习", "深度学习", "神经网络", "模型", "训练"),
    "database": ("数据库", "sql", "查询", "索引", "事务"),
    "web_development": ("前端", "后端", "api", "接口", "框架"),
    "devops": ("运维", "部署", "容器", "k8s", "docker"),
}


class RuleBasedClassifier:
    """Scores every rule against normalized text and keeps the best.

    For a rule with weight `w`, `raw` is the weighted sum of hit signals and
    `hit_rate` is hits over defined signals. The rule score is

        0.6 * log1p(raw * w) / log1p(max_raw * w) + 0.4 * (1 - exp(-3 * hit_rate))

    The top-scoring rule wins; below `MIN_CONFIDENCE` the result is `unknown`
    with confidence 0. The classifier holds no mutable state.
    """

    def __init__(
        self,
        rules: Sequence[IntentRule] | None = None,
        slot_parsers: Sequence[SlotParser] | None = None,
    ) -> None:
        self._rules = list(rules) if rules is not None else default_rules()
        self._slot_parsers = (
            list(slot_parsers) if slot_parsers is not None else default_slot_parsers()
        )

    @property
    def rules(self) -> list[IntentRule]:
        return list(self._rules)

    def classify(
        self,
        text: str,
        *,
        history: Sequence[str] | None = None,
        ctx: RunContext | None = None,
    ) -> Intent:
        del history  # rules look at the current question only.
        if ctx is not None:
            ctx.check()

        normalized = normalize_text(text)
        best = self.best_match(normalized)
        slots = self.extract_slots(text)

        if best is None or best.score < MIN_CONFIDENCE:
            return Intent(
                type=IntentType.UNKNOWN,
                confidence=0.0,
                raw_text=text,
                strategy="simple_rag",
                need_tools=["rag"],
                estimated_steps=1,
                complexity="simple",
                classification_method="rule",
            )

        rule = best.rule
        return Intent(
            type=rule.intent_type,
            confidence=best.score,
            raw_text=text,
            strategy=rule.strategy,
            need_tools=list(rule.tools),
            estimated_steps=rule.estimated_steps,
            complexity=estimate_complexity(text, rule.estimated_steps),
            requires_external=requires_external(rule.intent_type, text),
            knowledge_domains=extract_domains(text),
            time_constraint=_time_constraint(slots),
            scope_constraint=_scope_constraint(slots),
            classification_method="rule",
        )

    def classify_batch(
        self, texts: Sequence[str], *, ctx: RunContext | None = None
    ) -> list[Intent]:
        return [self.classify(text, ctx=ctx) for text in texts]

    def score(self, normalized: str) -> dict[IntentType, float]:
        """Best score per intent type for already-normalized text."""
        scores: dict[IntentType, float] = {}
        for match in self._matches(normalized):
            if match.score > scores.get(match.rule.intent_type, 0.0):
                scores[match.rule.intent_type] = match.score
        return scores

    def best_match(self, normalized: str) -> RuleMatch | None:
        best: RuleMatch | None = None
        for match in self._matches(normalized):
            if best is None or match.score > best.score:
                best = match
        return best

    def extract_slots(self, text: str) -> dict[str, list[str]]:
        slots: dict[str, list[str]] = {}
        for parser in self._slot_parsers:
            found = [m.group(0) for m in parser.pattern.finditer(text)]
            if found:
                slots[parser.name] = found
        return slots

    def _matches(self, normalized: str) -> list[RuleMatch]:
        lower = normalized.lower()
        matches: list[RuleMatch] = []
        for rule in self._rules:
            raw = 0.0
            hits: list[str] = []
            for keyword in rule.keywords:
                if keyword in lower:
                    raw += KEYWORD_WEIGHT
                    hits.append(keyword)
            for hot_word in rule.hot_words:
                if hot_word in lower:
                    raw += HOT_WORD_WEIGHT
                    hits.append(hot_word)
            for pattern in rule.patterns:
                if pattern.search(normalized):
                    raw += PATTERN_WEIGHT
                    hits.append(pattern.pattern)
            for domain_keyword in rule.domain_keywords:
                if domain_keyword in lower:
                    raw += DOMAIN_WEIGHT
                    hits.append(domain_keyword)

            if raw <= 0 or rule.signal_count == 0:
                continue

            hit_rate = len(hits) / rule.signal_count
            saturation = 1.0 - math.exp(-3.0 * hit_rate)
            log_norm = math.log1p(raw * rule.weight) / math.log1p(rule.max_raw * rule.weight)
            score = 0.6 * log_norm + 0.4 * saturation
            matches.append(RuleMatch(rule=rule, score=max(0.0, min(1.0, score)), hits=hits))
        return matches


def normalize_text(text: str) -> str:
    """Trim, collapse whitespace and fold full-width punctuation to half-width."""
    collapsed = _WHITESPACE.sub(" ", text.strip())
    return fold_full_width(collapsed)


def fold_full_width(text: str) -> str:
    out: list[str] = []
    for char in text:
        code = ord(char)
        if 0xFF01 <= code <= 0xFF5E:
            out.append(chr(code - 0xFEE0))
        elif code == 0x3000:
            out.append(" ")
        else:
            out.append(char)
    return "".join(out)


def estimate_complexity(text: str, steps: int) -> Complexity:
    if steps <= 2 and len(text) < 30:
        return "simple"
    if steps >= 5 or len(text) > 100:
        return "complex"
    return "medium"


def requires_external(intent_type: IntentType, text: str) -> bool:
    if intent_type in EXTERNAL_INTENTS:
        return True
    lower = text.lower()
    return any(keyword in lower for keyword in _EXTERNAL_KEYWORDS)


def extract_domains(text: str) -> list[str]:
    lower = text.lower()
    return [
        domain
        for domain, keywords in _DOMAIN_KEYWORDS.items()
        if any(keyword in lower for keyword in keywords)
    ]


def _time_constraint(slots: dict[str, list[str]]) -> TimeConstraint | None:
    times = slots.get("time")
    return TimeConstraint(relative=times[0]) if times else None


def _scope_constraint(slots: dict[str, list[str]]) -> ScopeConstraint | None:
    entities = slots.get("entity")
    return ScopeConstraint(entities=entities) if entities else None
