"""Macro expansion for dashboard SQL templates.

dashboard queries are written against placeholders like $__timeFilter(ts)
that only make sense once we know the panel's time range and interval. this
module rewrites them into plain databricks sql.

this is deliberately NOT a sql parser. templates are small and the
placeholders are unambiguous, so ordered regex substitution is enough. the
order matters though:

  1. the interval string is computed once
  2. $__timeWindow switches $__time/$__value into their windowed forms...
  3. ...otherwise $__time/$__value become plain column aliases
  4. $__timeGroup (explicit interval literal)
  5. the three BETWEEN filters
  6. context-free tokens ($__timeFrom, $__interval, epochs, ...)

steps 2 and 3 never both run for the same template. swapping any of this
around silently changes the generated sql, so don't.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from lakedash.models.query import QueryContext

logger = logging.getLogger(__name__)

# anything else in the column slot means "not a placeholder" - left as text
_COLUMN = r"([A-Za-z0-9_-]+)"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ExpansionFn = Callable[[re.Match[str], QueryContext], str]


@dataclass(frozen=True)
class MacroRule:
    """One placeholder pattern and how to rewrite it."""

    name: str
    pattern: re.Pattern[str]
    expand: ExpansionFn

    def matches(self, sql: str) -> bool:
        return self.pattern.search(sql) is not None

    def apply(self, sql: str, ctx: QueryContext) -> str:
        # function replacement so backslashes in the output are taken literally
        return self.pattern.sub(lambda match: self.expand(match, ctx), sql)


def _column_macro(name: str) -> re.Pattern[str]:
    return re.compile(rf"\$__{name}\({_COLUMN}\)")


def _token(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _sql_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _unix_seconds(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(seconds=1)


def _unix_nanos(value: datetime) -> int:
    # timedelta tops out at microseconds, the last three digits are always 0
    return (value - _EPOCH) // timedelta(microseconds=1) * 1000


def _time_filter(match: re.Match[str], ctx: QueryContext) -> str:
    return (
        f"{match[1]} BETWEEN '{_sql_timestamp(ctx.utc_from)}' "
        f"AND '{_sql_timestamp(ctx.utc_to)}'"
    )


def _unix_epoch_filter(match: re.Match[str], ctx: QueryContext) -> str:
    return f"{match[1]} BETWEEN {_unix_seconds(ctx.utc_from)} AND {_unix_seconds(ctx.utc_to)}"


def _unix_epoch_nano_filter(match: re.Match[str], ctx: QueryContext) -> str:
    return f"{match[1]} BETWEEN {_unix_nanos(ctx.utc_from)} AND {_unix_nanos(ctx.utc_to)}"


# --- the rule catalog ---

TIME_WINDOW = MacroRule(
    "timeWindow",
    _column_macro("timeWindow"),
    lambda m, ctx: f"window({m[1]}, '{ctx.interval_string}')",
)

# windowed forms - only used when $__timeWindow was present
WINDOW_TIME = MacroRule("time", _column_macro("time"), lambda m, ctx: "window.start")
WINDOW_VALUE = MacroRule("value", _column_macro("value"), lambda m, ctx: f"avg({m[1]}) AS value")

# plain aliases - only used when $__timeWindow was absent
TIME_ALIAS = MacroRule("time", _column_macro("time"), lambda m, ctx: f"{m[1]} AS time")
VALUE_ALIAS = MacroRule("value", _column_macro("value"), lambda m, ctx: f"{m[1]} AS value")

TIME_GROUP = MacroRule(
    "timeGroup",
    re.compile(rf"\$__timeGroup\({_COLUMN},\s*'([^']*)'\)"),
    lambda m, ctx: f"window({m[1]}, '{m[2]}')",
)

TIME_FILTER = MacroRule("timeFilter", _column_macro("timeFilter"), _time_filter)
UNIX_EPOCH_FILTER = MacroRule("unixEpochFilter", _column_macro("unixEpochFilter"), _unix_epoch_filter)
UNIX_EPOCH_NANO_FILTER = MacroRule(
    "unixEpochNanoFilter", _column_macro("unixEpochNanoFilter"), _unix_epoch_nano_filter
)

# no captures. the lookaheads keep $__timeFrom off $__timeFrom() and
# $__interval off $__interval_ms
TOKEN_RULES = (
    MacroRule(
        "timeFrom()",
        _token(r"\$__timeFrom\(\)"),
        lambda m, ctx: f"timestamp_seconds({_unix_seconds(ctx.utc_from)})",
    ),
    MacroRule(
        "timeTo()",
        _token(r"\$__timeTo\(\)"),
        lambda m, ctx: f"timestamp_seconds({_unix_seconds(ctx.utc_to)})",
    ),
    MacroRule(
        "timeFrom",
        _token(r"\$__timeFrom(?![\w(])"),
        lambda m, ctx: f"'{_sql_timestamp(ctx.utc_from)}'",
    ),
    MacroRule(
        "timeTo",
        _token(r"\$__timeTo(?![\w(])"),
        lambda m, ctx: f"'{_sql_timestamp(ctx.utc_to)}'",
    ),
    MacroRule("interval", _token(r"\$__interval(?!\w)"), lambda m, ctx: ctx.interval_string),
    MacroRule(
        "unixEpochFrom()",
        _token(r"\$__unixEpochFrom\(\)"),
        lambda m, ctx: str(_unix_seconds(ctx.utc_from)),
    ),
    MacroRule(
        "unixEpochTo()",
        _token(r"\$__unixEpochTo\(\)"),
        lambda m, ctx: str(_unix_seconds(ctx.utc_to)),
    ),
    MacroRule(
        "unixEpochNanoFrom()",
        _token(r"\$__unixEpochNanoFrom\(\)"),
        lambda m, ctx: str(_unix_nanos(ctx.utc_from)),
    ),
    MacroRule(
        "unixEpochNanoTo()",
        _token(r"\$__unixEpochNanoTo\(\)"),
        lambda m, ctx: str(_unix_nanos(ctx.utc_to)),
    ),
)


class MacroExpander:
    """Rewrites dashboard placeholders into executable SQL.

    stateless and pure apart from debug logging - one instance can be shared
    by every request on a datasource.
    """

    WINDOWED_RULES = (WINDOW_TIME, WINDOW_VALUE)
    ALIAS_RULES = (TIME_ALIAS, VALUE_ALIAS)
    GROUPING_RULES = (TIME_GROUP,)
    FILTER_RULES = (TIME_FILTER, UNIX_EPOCH_FILTER, UNIX_EPOCH_NANO_FILTER)

    def expand(self, template: str, ctx: QueryContext) -> str:
        """Expand every placeholder in `template`. Never raises on bad placeholders."""
        logger.debug("Raw SQL template: %s", template)

        # step 1: interval string, cached on the context
        interval = ctx.interval_string
        logger.debug("Interval for query: %r", interval)

        sql = template

        # steps 2/3: windowed branch XOR plain alias branch
        if TIME_WINDOW.matches(sql):
            sql = self._apply(TIME_WINDOW, sql, ctx)
            for rule in self.WINDOWED_RULES:
                sql = self._apply(rule, sql, ctx)
        else:
            for rule in self.ALIAS_RULES:
                sql = self._apply(rule, sql, ctx)

        # steps 4-6: independent of the branch above
        for rule in (*self.GROUPING_RULES, *self.FILTER_RULES, *TOKEN_RULES):
            sql = self._apply(rule, sql, ctx)

        return sql

    def _apply(self, rule: MacroRule, sql: str, ctx: QueryContext) -> str:
        if not rule.matches(sql):
            return sql
        logger.debug("__%s placeholder found", rule.name)
        return rule.apply(sql, ctx)

    @property
    def rules(self) -> tuple[MacroRule, ...]:
        """The full catalog in application order (both branches included)."""
        return (
            TIME_WINDOW,
            *self.WINDOWED_RULES,
            *self.ALIAS_RULES,
            *self.GROUPING_RULES,
            *self.FILTER_RULES,
            *TOKEN_RULES,
        )


_default_expander = MacroExpander()


def expand_macros(template: str, ctx: QueryContext) -> str:
    """Expand `template` with a shared default expander."""
    return _default_expander.expand(template, ctx)
