from __future__ import annotations


class RateCardError(Exception):
    pass


class WorkbookReadError(RateCardError):
    """The workbook container could not be opened or read."""


class RuleSetError(RateCardError):
    """A channel rule set is malformed (bad divisors, unsorted thresholds...)."""


class ConfigError(RateCardError):
    pass
