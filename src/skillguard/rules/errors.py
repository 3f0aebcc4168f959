"""Errors raised while loading and evaluating skill rules."""


class ConfigError(ValueError):
    """The rule store is malformed. Fatal for the invocation.

    Carries enough context (source file, rule id, field) for a user to fix
    the configuration.
    """

    def __init__(
        self,
        message: str,
        rule_id: str | None = None,
        field: str | None = None,
        source: str | None = None,
    ) -> None:
        self.rule_id = rule_id
        self.field = field
        self.source = source
        self.reason = message
        super().__init__(self._format())

    def _format(self) -> str:
        where: list[str] = []
        if self.source:
            where.append(self.source)
        if self.rule_id:
            where.append(f"rule '{self.rule_id}'")
        if self.field:
            where.append(f"field '{self.field}'")
        prefix = ", ".join(where)
        return f"{prefix}: {self.reason}" if prefix else self.reason


class MatchError(ValueError):
    """A single glob or regex cannot be evaluated.

    Non-fatal: the rule that owns the pattern is skipped.
    """

    def __init__(self, message: str, pattern: str = "") -> None:
        self.pattern = pattern
        super().__init__(f"{message}: {pattern!r}" if pattern else message)
