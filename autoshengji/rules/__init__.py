"""Shengji rule queries over server snapshots."""


class RulesError(RuntimeError):
    pass


class NoBidsYetError(RulesError):
    pass
