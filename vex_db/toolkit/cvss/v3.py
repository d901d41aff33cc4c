"""
CVSS v3.0 and v3.1 vectors and scoring.

The two minor versions share the metric table and differ only in their
rounding function and, for v3.1, in the scope-changed environmental impact
equation.
"""

import math

from .base import CVSSParseError, Vector

_AV = {'N': 0.85, 'A': 0.62, 'L': 0.55, 'P': 0.2}
_AC = {'L': 0.77, 'H': 0.44}
_PR_UNCHANGED = {'N': 0.85, 'L': 0.62, 'H': 0.27}
_PR_CHANGED = {'N': 0.85, 'L': 0.68, 'H': 0.5}
_UI = {'N': 0.85, 'R': 0.62}
_CIA = {'H': 0.56, 'L': 0.22, 'N': 0.0}
_E = {'X': 1.0, 'H': 1.0, 'F': 0.97, 'P': 0.94, 'U': 0.91}
_RL = {'X': 1.0, 'U': 1.0, 'W': 0.97, 'T': 0.96, 'O': 0.95}
_RC = {'X': 1.0, 'C': 1.0, 'R': 0.96, 'U': 0.92}
_REQ = {'X': 1.0, 'H': 1.5, 'M': 1.0, 'L': 0.5}

TEMPORAL_METRICS = ['E', 'RL', 'RC']
ENVIRONMENTAL_METRICS = ['CR', 'IR', 'AR', 'MAV', 'MAC', 'MPR', 'MUI', 'MS', 'MC', 'MI', 'MA']


def roundup_v30(x: float) -> float:
    return math.ceil(x * 10) / 10


def roundup_v31(x: float) -> float:
    """Round up to one decimal using integer arithmetic to avoid float drift"""
    i = int(round(x * 100000))
    if i % 10000 == 0:
        return i / 100000.0
    return (math.floor(i / 10000) + 1) / 10.0


class V3(Vector):
    """A CVSS v3.0 or v3.1 vector"""

    METRICS = (
        ('AV', ('N', 'A', 'L', 'P')),
        ('AC', ('L', 'H')),
        ('PR', ('N', 'L', 'H')),
        ('UI', ('N', 'R')),
        ('S', ('U', 'C')),
        ('C', ('H', 'L', 'N')),
        ('I', ('H', 'L', 'N')),
        ('A', ('H', 'L', 'N')),
        ('E', ('X', 'H', 'F', 'P', 'U')),
        ('RL', ('X', 'U', 'W', 'T', 'O')),
        ('RC', ('X', 'C', 'R', 'U')),
        ('CR', ('X', 'H', 'M', 'L')),
        ('IR', ('X', 'H', 'M', 'L')),
        ('AR', ('X', 'H', 'M', 'L')),
        ('MAV', ('X', 'N', 'A', 'L', 'P')),
        ('MAC', ('X', 'L', 'H')),
        ('MPR', ('X', 'N', 'L', 'H')),
        ('MUI', ('X', 'N', 'R')),
        ('MS', ('X', 'U', 'C')),
        ('MC', ('X', 'H', 'L', 'N')),
        ('MI', ('X', 'H', 'L', 'N')),
        ('MA', ('X', 'H', 'L', 'N')),
    )
    BASE_METRICS = 8
    PREFIX = "CVSS"
    STRICT_ORDER = True

    @classmethod
    def _check_version(cls, version: str, vector: str):
        if version not in ("3.0", "3.1"):
            raise CVSSParseError(f"unknown CVSS version {version!r}", vector, 5)

    @property
    def minor(self) -> int:
        return int(self.version.split(".")[1])

    def _roundup(self, x: float) -> float:
        return roundup_v31(x) if self.minor == 1 else roundup_v30(x)

    def _v(self, metric: str) -> str:
        return self._values.get(metric, 'X')

    def _modified(self, metric: str) -> str:
        """Modified metric value, falling back to the base metric"""
        v = self._v('M' + metric)
        return self._v(metric) if v == 'X' else v

    def has_temporal(self) -> bool:
        return self._any_set(TEMPORAL_METRICS)

    def has_environmental(self) -> bool:
        return self._any_set(ENVIRONMENTAL_METRICS)

    def _temporal_factor(self) -> float:
        return _E[self._v('E')] * _RL[self._v('RL')] * _RC[self._v('RC')]

    def base_score(self) -> float:
        changed = self._v('S') == 'C'
        iss = 1 - ((1 - _CIA[self._v('C')]) * (1 - _CIA[self._v('I')]) * (1 - _CIA[self._v('A')]))
        if changed:
            impact = 7.52 * (iss - 0.029) - 3.25 * math.pow(iss - 0.02, 15)
        else:
            impact = 6.42 * iss
        pr = (_PR_CHANGED if changed else _PR_UNCHANGED)[self._v('PR')]
        exploitability = 8.22 * _AV[self._v('AV')] * _AC[self._v('AC')] * pr * _UI[self._v('UI')]
        if impact <= 0:
            return 0.0
        if changed:
            return self._roundup(min(1.08 * (impact + exploitability), 10))
        return self._roundup(min(impact + exploitability, 10))

    def temporal_score(self) -> float:
        return self._roundup(self.base_score() * self._temporal_factor())

    def environmental_score(self) -> float:
        changed = self._modified('S') == 'C'
        miss = min(1 - (
            (1 - _REQ[self._v('CR')] * _CIA[self._modified('C')]) *
            (1 - _REQ[self._v('IR')] * _CIA[self._modified('I')]) *
            (1 - _REQ[self._v('AR')] * _CIA[self._modified('A')])
        ), 0.915)
        if changed:
            if self.minor == 1:
                impact = 7.52 * (miss - 0.029) - 3.25 * math.pow(miss * 0.9731 - 0.02, 13)
            else:
                impact = 7.52 * (miss - 0.029) - 3.25 * math.pow(miss - 0.02, 15)
        else:
            impact = 6.42 * miss
        pr = (_PR_CHANGED if changed else _PR_UNCHANGED)[self._modified('PR')]
        exploitability = (8.22 * _AV[self._modified('AV')] * _AC[self._modified('AC')] *
                          pr * _UI[self._modified('UI')])
        if impact <= 0:
            return 0.0
        if changed:
            modified_base = self._roundup(min(1.08 * (impact + exploitability), 10))
        else:
            modified_base = self._roundup(min(impact + exploitability, 10))
        return self._roundup(modified_base * self._temporal_factor())

    def score(self) -> float:
        if self.has_environmental():
            return self.environmental_score()
        if self.has_temporal():
            return self.temporal_score()
        return self.base_score()


def parse_v3(s: str) -> V3:
    return V3.parse(s)
