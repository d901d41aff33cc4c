"""
CVSS v2 vectors and scoring.

Weights and equations are those of the CVSS v2 guide, section 3.2.
"""

from .base import Vector, round_half_up

_AV = {'L': 0.395, 'A': 0.646, 'N': 1.0}
_AC = {'H': 0.35, 'M': 0.61, 'L': 0.71}
_AU = {'M': 0.45, 'S': 0.56, 'N': 0.704}
_IMPACT = {'N': 0.0, 'P': 0.275, 'C': 0.660}
_E = {'U': 0.85, 'POC': 0.9, 'F': 0.95, 'H': 1.0, 'ND': 1.0}
_RL = {'OF': 0.87, 'TF': 0.90, 'W': 0.95, 'U': 1.0, 'ND': 1.0}
_RC = {'UC': 0.90, 'UR': 0.95, 'C': 1.0, 'ND': 1.0}
_CDP = {'N': 0.0, 'L': 0.1, 'LM': 0.3, 'MH': 0.4, 'H': 0.5, 'ND': 0.0}
_TD = {'N': 0.0, 'L': 0.25, 'M': 0.75, 'H': 1.0, 'ND': 1.0}
_REQ = {'L': 0.5, 'M': 1.0, 'H': 1.51, 'ND': 1.0}

TEMPORAL_METRICS = ['E', 'RL', 'RC']
ENVIRONMENTAL_METRICS = ['CDP', 'TD', 'CR', 'IR', 'AR']


class V2(Vector):
    """A CVSS v2 vector; metrics may appear in any order"""

    METRICS = (
        ('AV', ('L', 'A', 'N')),
        ('AC', ('H', 'M', 'L')),
        ('Au', ('M', 'S', 'N')),
        ('C', ('N', 'P', 'C')),
        ('I', ('N', 'P', 'C')),
        ('A', ('N', 'P', 'C')),
        ('E', ('U', 'POC', 'F', 'H', 'ND')),
        ('RL', ('OF', 'TF', 'W', 'U', 'ND')),
        ('RC', ('UC', 'UR', 'C', 'ND')),
        ('CDP', ('N', 'L', 'LM', 'MH', 'H', 'ND')),
        ('TD', ('N', 'L', 'M', 'H', 'ND')),
        ('CR', ('L', 'M', 'H', 'ND')),
        ('IR', ('L', 'M', 'H', 'ND')),
        ('AR', ('L', 'M', 'H', 'ND')),
    )
    BASE_METRICS = 6
    PREFIX = None
    STRICT_ORDER = False

    def _v(self, metric: str) -> str:
        return self._values.get(metric, 'ND')

    def has_temporal(self) -> bool:
        return self._any_set(TEMPORAL_METRICS)

    def has_environmental(self) -> bool:
        return self._any_set(ENVIRONMENTAL_METRICS)

    def _base(self, impact: float) -> float:
        exploitability = 20 * _AV[self._v('AV')] * _AC[self._v('AC')] * _AU[self._v('Au')]
        f = 1.176 if impact != 0 else 0.0
        return round_half_up(((0.6 * impact) + (0.4 * exploitability) - 1.5) * f)

    def _impact(self, cr: float = 1.0, ir: float = 1.0, ar: float = 1.0) -> float:
        c, i, a = _IMPACT[self._v('C')], _IMPACT[self._v('I')], _IMPACT[self._v('A')]
        return min(10.0, 10.41 * (1 - (1 - c * cr) * (1 - i * ir) * (1 - a * ar)))

    def _temporal(self, base: float) -> float:
        return round_half_up(base * _E[self._v('E')] * _RL[self._v('RL')] * _RC[self._v('RC')])

    def base_score(self) -> float:
        return self._base(self._impact())

    def temporal_score(self) -> float:
        return self._temporal(self.base_score())

    def environmental_score(self) -> float:
        adjusted = self._impact(_REQ[self._v('CR')], _REQ[self._v('IR')], _REQ[self._v('AR')])
        adjusted_temporal = self._temporal(self._base(adjusted))
        cdp, td = _CDP[self._v('CDP')], _TD[self._v('TD')]
        return round_half_up((adjusted_temporal + (10 - adjusted_temporal) * cdp) * td)

    def score(self) -> float:
        if self.has_environmental():
            return self.environmental_score()
        if self.has_temporal():
            return self.temporal_score()
        return self.base_score()


def parse_v2(s: str) -> V2:
    return V2.parse(s)
