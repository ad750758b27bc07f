"""
Rule engine for SOLVO.

Loads rewrite rules from the rule DSL or from Python and applies them to
expressions with priorities, groups, guards and tracing.

DSL rule format:
    @name: pattern => skeleton
    @name[priority] "description": pattern => skeleton when condition

Groups:
    [canonical]
    @sub-self: (- ?x ?x) => 0

A skeleton may also be a Python builder callable, and a guard a Python
predicate; both receive the match Bindings:

    engine.add_rule(E("(* ?xs...)"), collect_product, name="collect")
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import RewriteCycle, RewriteLimitExceeded
from .expressions import ExprType, compound, constant, format_sexpr, parse_sexpr, to_tuple
from .rewriter import (
    Bindings,
    FoldFuncsType,
    NoMatch,
    PREDICATE_PRELUDE,
    instantiate,
    match as _match_internal,
    same_expr,
    try_fold,
    wrap_bindings,
)

logger = logging.getLogger(__name__)

# Rule applications allowed per rewrite call
DEFAULT_MAX_STEPS = 10000

GuardType = Union[ExprType, Callable[[Bindings], bool], None]


class RuleMetadata:
    """Metadata for a rule including name, description, priority, and condition."""

    def __init__(self, name: Optional[str] = None, description: Optional[str] = None,
                 tags: Optional[List[str]] = None, condition: GuardType = None,
                 priority: int = 0):
        self.name = name
        self.description = description
        self.tags = tags or []
        self.condition = condition
        self.priority = priority  # Higher priority fires first

    def label(self, index: int) -> str:
        return self.name or f"rule[{index}]"

    def __repr__(self) -> str:
        if self.name:
            if self.priority != 0:
                base = f"@{self.name}[{self.priority}]"
            else:
                base = f"@{self.name}"
            if self.description:
                base += f" \"{self.description}\""
        else:
            base = "<anonymous>"

        if self.condition is not None:
            base += f" when {format_sexpr(self.condition)}"
        return base


def parse_rule_line(line: str) -> Optional[Tuple[RuleMetadata, ExprType, ExprType]]:
    """
    Parse a single rule line.

    Formats:
        @name: pattern => skeleton
        @name[priority]: pattern => skeleton
        @name "description": pattern => skeleton
        @name[priority] "description": pattern => skeleton
        @name: pattern => skeleton when condition
        pattern => skeleton

    Returns: (metadata, pattern, skeleton) or None if not a rule
    """
    line = line.strip()

    if not line or line.startswith('#'):
        return None

    metadata = RuleMetadata()
    if line.startswith('@'):
        header = re.match(r'@([\w-]+)(?:\[(-?\d+)\])?(?:\s+"([^"]+)")?:\s*(.+)', line)
        if header:
            metadata.name = header.group(1)
            if header.group(2):
                metadata.priority = int(header.group(2))
            metadata.description = header.group(3)
            line = header.group(4)

    if '=>' not in line:
        return None

    pattern_str, rest = (part.strip() for part in line.split('=>', 1))

    # Find 'when' at top level (not inside parentheses)
    skeleton_str = rest
    depth = 0
    for i, c in enumerate(rest):
        if c == '(':
            depth += 1
        elif c == ')':
            depth -= 1
        elif (depth == 0 and rest[i:i + 4] == 'when' and (i == 0 or rest[i - 1].isspace())
              and (i + 4 >= len(rest) or rest[i + 4].isspace())):
            skeleton_str = rest[:i].strip()
            metadata.condition = parse_sexpr(rest[i + 4:].strip())
            break

    pattern = parse_sexpr(pattern_str)
    skeleton = parse_sexpr(skeleton_str)

    if pattern is None or skeleton is None:
        return None

    return (metadata, pattern, skeleton)


def load_rules_from_dsl(text: str) -> List[Tuple[RuleMetadata, List]]:
    """
    Load rules from DSL text.

    A line of the form [groupname] tags the rules that follow it.

    Returns:
        List of (metadata, [pattern, skeleton]) tuples
    """
    rules = []
    current_group = None

    for line in text.split('\n'):
        line_stripped = line.strip()

        if line_stripped.startswith('[') and line_stripped.endswith(']'):
            current_group = line_stripped[1:-1].strip()
            continue

        result = parse_rule_line(line)
        if result:
            metadata, pattern, skeleton = result
            if current_group and current_group not in metadata.tags:
                metadata.tags.append(current_group)
            rules.append((metadata, [pattern, skeleton]))
    return rules


class RewriteStep:
    """A single step in a rewriting trace."""

    def __init__(self, rule_index: int, metadata: RuleMetadata,
                 before: ExprType, after: ExprType):
        self.rule_index = rule_index
        self.metadata = metadata
        self.before = before
        self.after = after

    @property
    def name(self) -> str:
        return self.metadata.label(self.rule_index)

    def __repr__(self) -> str:
        return f"{self.name}: {format_sexpr(self.before)} -> {format_sexpr(self.after)}"


class RewriteTrace:
    """
    A trace of all rewriting steps applied.

    Formatting styles:
        - "verbose": full details with before/after (also the repr)
        - "compact": single line showing the rule chain
        - "rules": just the rule names applied
        - "chain": the expression after each step
    """

    def __init__(self, initial: ExprType = None):
        self.steps: List[RewriteStep] = []
        self.initial: ExprType = initial
        self.final: ExprType = None

    def add_step(self, step: RewriteStep):
        self.steps.append(step)

    def format(self, style: str = "verbose") -> str:
        if style == "compact":
            return (f"{format_sexpr(self.initial)} --[{', '.join(self.rules_applied())}]--> "
                    f"{format_sexpr(self.final)}")

        elif style == "rules":
            rules = self.rules_applied()
            return " -> ".join(rules) if rules else "(no rules applied)"

        elif style == "chain":
            if not self.steps:
                return format_sexpr(self.initial)
            parts = [format_sexpr(self.initial)]
            for step in self.steps:
                parts.append(f"  --({step.name})-->")
                parts.append(format_sexpr(step.after))
            return "\n".join(parts)

        return repr(self)

    def __repr__(self) -> str:
        lines = [f"Initial: {format_sexpr(self.initial)}"]
        for i, step in enumerate(self.steps, 1):
            if step.metadata.description:
                lines.append(f"  {i}. {step} ({step.metadata.description})")
            else:
                lines.append(f"  {i}. {step}")
        lines.append(f"Final: {format_sexpr(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any rewriting was done."""
        return len(self.steps) > 0

    def rule_counts(self) -> Dict[str, int]:
        """Count how many times each rule was applied."""
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.name] = counts.get(step.name, 0) + 1
        return counts

    def rules_applied(self) -> List[str]:
        return [step.name for step in self.steps]

    def summary(self) -> str:
        if not self.steps:
            return "No rewriting performed"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} steps using {len(counts)} unique rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


class _Budget:
    """Step counter shared by one rewrite call."""

    __slots__ = ('limit', 'used', 'trace')

    def __init__(self, limit: int, trace: Optional[RewriteTrace]):
        self.limit = limit
        self.used = 0
        self.trace = trace

    def charge(self, rule_index: int, metadata: RuleMetadata,
               before: ExprType, after: ExprType) -> None:
        self.used += 1
        if self.trace is not None:
            self.trace.add_step(RewriteStep(rule_index, metadata, before, after))
        if self.used > self.limit:
            logger.debug(f"rewrite budget of {self.limit} steps exhausted at "
                         f"{metadata.label(rule_index)}")
            raise RewriteLimitExceeded(
                f"rewrite budget of {self.limit} steps exhausted", last=after)


class RuleEngine:
    """
    A rule engine that loads and applies rewriting rules.

    By default this is a pure rule rewriter with no built-in evaluation.
    To enable constant folding, pass a prelude via fold_funcs.

    Example:
        from solvo import RuleEngine, ARITHMETIC_PRELUDE

        engine = RuleEngine.from_dsl('''
            @add-zero "Adding zero has no effect": (+ ?x 0) => :x
            @mul-one: (* ?x 1) => :x
        ''')
        result = engine(expr)

        engine = RuleEngine.from_dsl(rules, fold_funcs=ARITHMETIC_PRELUDE)
    """

    def __init__(self, fold_funcs: Optional[FoldFuncsType] = None):
        self._rules: List[List] = []
        self._metadata: List[RuleMetadata] = []
        self._rule_names: Dict[str, int] = {}  # Maps name -> index
        self._fold_funcs: Optional[FoldFuncsType] = fold_funcs

    def _sort_by_priority(self) -> None:
        """Stable sort by priority, highest first."""
        indexed = sorted(range(len(self._rules)), key=lambda i: -self._metadata[i].priority)
        self._rules = [self._rules[i] for i in indexed]
        self._metadata = [self._metadata[i] for i in indexed]
        self._rule_names = {meta.name: idx for idx, meta in enumerate(self._metadata) if meta.name}

    def _append(self, metadata: RuleMetadata, rule: List) -> None:
        self._rules.append(rule)
        self._metadata.append(metadata)
        if metadata.name:
            self._rule_names[metadata.name] = len(self._rules) - 1

    def load_dsl(self, text: str) -> 'RuleEngine':
        """Load rules from DSL text."""
        for metadata, rule in load_rules_from_dsl(text):
            self._append(metadata, rule)
        self._sort_by_priority()
        return self

    def load_rules(self, rules: List[List]) -> 'RuleEngine':
        """Load rules from a Python list of [pattern, skeleton] pairs."""
        for rule in rules:
            self._append(RuleMetadata(), list(rule))
        self._sort_by_priority()
        return self

    def add_rule(self, pattern: Union[str, ExprType], skeleton: Any,
                 name: Optional[str] = None,
                 description: Optional[str] = None,
                 guard: GuardType = None,
                 priority: int = 0,
                 tags: Optional[List[str]] = None) -> 'RuleEngine':
        """
        Add a single rule.

        pattern may be DSL text. skeleton may be a template or a builder
        callable taking Bindings. guard may be a DSL condition or a
        predicate taking Bindings.
        """
        if isinstance(pattern, str):
            pattern = parse_sexpr(pattern)
        if isinstance(skeleton, str) and skeleton.startswith('('):
            skeleton = parse_sexpr(skeleton)
        metadata = RuleMetadata(name=name, description=description, tags=tags,
                                condition=guard, priority=priority)
        self._append(metadata, [pattern, skeleton])
        self._sort_by_priority()
        return self

    def get_rule(self, name: str) -> Optional[Tuple[List, RuleMetadata]]:
        if name in self._rule_names:
            idx = self._rule_names[name]
            return self._rules[idx], self._metadata[idx]
        return None

    def _is_rule_active(self, metadata: RuleMetadata, groups: Optional[List[str]] = None) -> bool:
        """Untagged rules are always active; tagged ones only when a listed group is selected."""
        if not metadata.tags or groups is None:
            return True
        return any(g in groups for g in metadata.tags)

    # ============================================================
    # Matching and single steps
    # ============================================================

    def match(self, pattern: Union[str, ExprType], expr: ExprType) -> Union[Bindings, type(NoMatch)]:
        """
        Match a pattern against an expression.

        Example:
            if bindings := engine.match("(+ ?a ?b)", expr):
                print(bindings["a"], bindings["b"])
        """
        if isinstance(pattern, str):
            pattern = parse_sexpr(pattern)
        return wrap_bindings(_match_internal(pattern, expr, []))

    def _check_condition(self, condition: GuardType, bindings) -> bool:
        """
        Check if a rule's guard is satisfied.

        DSL conditions are instantiated with the engine's prelude plus the
        predicate prelude. A condition that does not reduce to a value
        (it is still a compound term) is not satisfied.
        """
        if condition is None:
            return True
        if callable(condition):
            return bool(condition(wrap_bindings(bindings)))

        fold_funcs = {**PREDICATE_PRELUDE, **(self._fold_funcs or {})}
        result = instantiate(condition, bindings, fold_funcs)

        if isinstance(result, bool):
            return result
        if constant(result):
            return result != 0
        if isinstance(result, str):
            return len(result) > 0
        return False

    def _apply_rules(self, expr: ExprType,
                     groups: Optional[List[str]] = None) -> Tuple[ExprType, Optional[int]]:
        """First applicable rule at the root: (result, rule index) or (expr, None)."""
        for rule_idx, (pattern, skeleton) in enumerate(self._rules):
            metadata = self._metadata[rule_idx]
            if not self._is_rule_active(metadata, groups):
                continue
            bindings = _match_internal(pattern, expr, [])
            if bindings == "failed":
                continue
            if not self._check_condition(metadata.condition, bindings):
                continue
            result = instantiate(skeleton, bindings, self._fold_funcs)
            if not same_expr(result, expr):
                return result, rule_idx
        return expr, None

    def apply_once(self, expr: ExprType, groups: Optional[List[str]] = None) -> Tuple[ExprType, Optional[RuleMetadata]]:
        """
        Apply at most one rule at the root of the expression.

        Returns:
            (result, metadata) where metadata is None if no rule applied

        Example:
            result, applied = engine.apply_once(expr)
            if applied:
                print(f"Applied rule: {applied.name}")
        """
        result, rule_idx = self._apply_rules(expr, groups)
        if rule_idx is None:
            return expr, None
        return result, self._metadata[rule_idx]

    def rules_matching(self, expr: ExprType, check_conditions: bool = True,
                       groups: Optional[List[str]] = None) -> List[Tuple[RuleMetadata, Bindings]]:
        """
        Find all rules that could apply to an expression.

        Useful for debugging and understanding why an expression isn't simplifying.
        """
        matching = []
        for rule_idx, (pattern, _) in enumerate(self._rules):
            metadata = self._metadata[rule_idx]
            if not self._is_rule_active(metadata, groups):
                continue
            raw_bindings = _match_internal(pattern, expr, [])
            if raw_bindings != "failed":
                if check_conditions and not self._check_condition(metadata.condition, raw_bindings):
                    continue
                matching.append((metadata, Bindings(raw_bindings)))
        return matching

    @property
    def rules(self) -> List[List]:
        return self._rules.copy()

    # ============================================================
    # Rewriting
    # ============================================================

    def _fold(self, expr: ExprType) -> ExprType:
        if self._fold_funcs and compound(expr) and expr and all(constant(a) for a in expr[1:]):
            folded = try_fold(expr[0], expr[1:], self._fold_funcs)
            if folded is not None:
                return folded
        return expr

    def _rewrite_node(self, expr: ExprType, budget: _Budget,
                      groups: Optional[List[str]]) -> ExprType:
        """Rewrite children, then rewrite this node to a local fixpoint."""
        if compound(expr) and expr:
            expr = [expr[0]] + [self._rewrite_node(sub, budget, groups) for sub in expr[1:]]
            expr = self._fold(expr)

        seen = {to_tuple(expr)}
        while True:
            result, rule_idx = self._apply_rules(expr, groups)
            if rule_idx is None:
                return expr
            budget.charge(rule_idx, self._metadata[rule_idx], expr, result)
            key = to_tuple(result)
            if key in seen:
                logger.debug(f"rewrite cycle at {format_sexpr(result)}")
                raise RewriteCycle(f"rewrite cycle at {format_sexpr(result)}", last=result)
            seen.add(key)
            if compound(result) and result:
                result = [result[0]] + [self._rewrite_node(sub, budget, groups) for sub in result[1:]]
                result = self._fold(result)
            expr = result

    def rewrite(self, expr: ExprType, max_steps: int = DEFAULT_MAX_STEPS,
                trace: bool = False, groups: Optional[List[str]] = None):
        """
        Rewrite bottom-up to a fixpoint.

        Children are rewritten before their parent, and each node is
        rewritten until no rule applies. Passes repeat until the whole term
        stops changing.

        Raises:
            RewriteLimitExceeded: after max_steps rule applications
            RewriteCycle: if a term recurs

        Returns:
            The rewritten expression, or (expression, trace) if trace=True
        """
        budget = _Budget(max_steps, RewriteTrace(expr) if trace else None)
        current = expr
        seen = {to_tuple(expr)}
        while True:
            result = self._rewrite_node(current, budget, groups)
            if same_expr(result, current):
                break
            key = to_tuple(result)
            if key in seen:
                logger.debug(f"rewrite cycle at {format_sexpr(result)}")
                raise RewriteCycle(f"rewrite cycle at {format_sexpr(result)}", last=result)
            seen.add(key)
            current = result

        if budget.trace is not None:
            budget.trace.final = current
            return current, budget.trace
        return current

    def simplify(
        self,
        expr: ExprType,
        trace: bool = False,
        max_steps: int = DEFAULT_MAX_STEPS,
        strategy: str = "exhaustive",
        groups: Optional[List[str]] = None
    ):
        """
        Simplify an expression using all loaded rules.

        Args:
            expr: Expression to simplify
            trace: If True, return (result, trace); exhaustive strategy only
            max_steps: Maximum rewrite steps
            strategy: Rewriting strategy
                - "exhaustive": bottom-up to a fixpoint (see rewrite)
                - "once": apply at most one rule anywhere in the expression
                - "bottomup": repeated single bottom-up passes
                - "topdown": repeated single top-down passes
            groups: If specified, only use rules from these groups.
        """
        if strategy == "exhaustive":
            return self.rewrite(expr, max_steps=max_steps, trace=trace, groups=groups)
        elif strategy == "once":
            return self._simplify_once(expr, groups=groups)
        elif strategy == "bottomup":
            return self._repeat(self._bottomup_pass, expr, max_steps, groups)
        elif strategy == "topdown":
            return self._repeat(self._topdown_pass, expr, max_steps, groups)
        raise ValueError(f"Unknown strategy: {strategy}. "
                         f"Valid options: exhaustive, once, bottomup, topdown")

    def _simplify_once(self, expr: ExprType, groups: Optional[List[str]] = None) -> ExprType:
        """Apply at most one rule anywhere in the expression tree."""
        result, rule_idx = self._apply_rules(expr, groups)
        if rule_idx is not None:
            return result

        if compound(expr) and expr:
            for i, child in enumerate(expr[1:], 1):
                new_child = self._simplify_once(child, groups=groups)
                if not same_expr(new_child, child):
                    return expr[:i] + [new_child] + expr[i + 1:]

        return expr

    def _repeat(self, one_pass, expr: ExprType, max_steps: int,
                groups: Optional[List[str]]) -> ExprType:
        for _ in range(max_steps):
            new_expr = one_pass(expr, groups)
            if same_expr(new_expr, expr):
                return expr
            expr = new_expr
        logger.debug(f"{max_steps} passes without reaching a fixpoint")
        raise RewriteLimitExceeded(f"no fixpoint after {max_steps} passes", last=expr)

    def _bottomup_pass(self, expr: ExprType, groups: Optional[List[str]] = None) -> ExprType:
        """Single bottom-up pass: simplify children, then apply one rule to the parent."""
        if not compound(expr) or not expr:
            return expr
        current = [expr[0]] + [self._bottomup_pass(child, groups) for child in expr[1:]]
        result, _ = self._apply_rules(current, groups)
        return result

    def _topdown_pass(self, expr: ExprType, groups: Optional[List[str]] = None) -> ExprType:
        """Single top-down pass: apply one rule to the parent, else descend."""
        result, rule_idx = self._apply_rules(expr, groups)
        if rule_idx is not None:
            return result
        if compound(expr) and expr:
            return [expr[0]] + [self._topdown_pass(child, groups) for child in expr[1:]]
        return expr

    # ============================================================
    # Introspection
    # ============================================================

    def _format_rule(self, rule: List, meta: RuleMetadata) -> str:
        pattern, skeleton = rule
        if meta.name:
            name_part = f"@{meta.name}[{meta.priority}]" if meta.priority else f"@{meta.name}"
            if meta.description:
                name_part += f" \"{meta.description}\""
            name_part += ": "
        else:
            name_part = ""

        rule_str = f"{name_part}{format_sexpr(pattern)} => {format_sexpr(skeleton)}"
        if meta.condition is not None:
            rule_str += f" when {format_sexpr(meta.condition)}"
        return rule_str

    def list_rules(self) -> List[str]:
        """List all rules in DSL format (builders and predicates show as <name>)."""
        return [self._format_rule(rule, meta) for rule, meta in zip(self._rules, self._metadata)]

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleEngine({len(self._rules)} rules)"

    def __call__(self, expr: ExprType, **kwargs) -> ExprType:
        """engine(expr) is shorthand for engine.simplify(expr)."""
        return self.simplify(expr, **kwargs)

    def __iter__(self):
        """Iterate over (rule, metadata) pairs."""
        return iter(zip(self._rules, self._metadata))

    def __contains__(self, name: str) -> bool:
        return name in self._rule_names

    def __getitem__(self, name: str) -> Tuple[List, RuleMetadata]:
        if name not in self._rule_names:
            raise KeyError(f"No rule named '{name}'")
        idx = self._rule_names[name]
        return self._rules[idx], self._metadata[idx]

    @classmethod
    def from_dsl(cls, text: str, fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleEngine':
        return cls(fold_funcs=fold_funcs).load_dsl(text)

    @classmethod
    def from_rules(cls, rules: List[List], fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleEngine':
        return cls(fold_funcs=fold_funcs).load_rules(rules)

    def copy(self) -> 'RuleEngine':
        new_engine = RuleEngine(fold_funcs=self._fold_funcs)
        new_engine._rules = self._rules.copy()
        new_engine._metadata = self._metadata.copy()
        new_engine._rule_names = self._rule_names.copy()
        return new_engine

    def __or__(self, other: 'RuleEngine') -> 'RuleEngine':
        """Union of two engines; rules of self come first at equal priority."""
        result = self.copy()
        for rule, meta in other:
            result._append(meta, rule)
        result._sort_by_priority()
        return result

    def __rshift__(self, other: 'RuleEngine') -> 'SequencedEngine':
        """
        Sequence two engines: engine1 >> engine2.

        Example:
            expand = RuleEngine.from_dsl("@expand: (square ?x) => (* :x :x)")
            fold = RuleEngine.from_dsl("@fold: (* ?a:const ?b:const) => (! * :a :b)",
                                       fold_funcs=ARITHMETIC_PRELUDE)
            normalize = expand >> fold
            normalize(E("(square 3)"))  # => 9
        """
        return SequencedEngine([self, other])


class SequencedEngine:
    """
    An engine that applies multiple engines in sequence, each to its fixpoint.

    Created via the >> operator on RuleEngine.
    """

    def __init__(self, engines: List[RuleEngine]):
        self._engines = engines

    def __call__(self, expr: ExprType, **kwargs) -> ExprType:
        result = expr
        for engine in self._engines:
            result = engine(result, **kwargs)
        return result

    def __rshift__(self, other) -> 'SequencedEngine':
        if isinstance(other, SequencedEngine):
            return SequencedEngine(self._engines + other._engines)
        return SequencedEngine(self._engines + [other])

    def __repr__(self) -> str:
        return f"SequencedEngine({len(self._engines)} phases)"

    def __len__(self) -> int:
        return len(self._engines)

    def __iter__(self):
        return iter(self._engines)
