"""
CVSS v4.0 vectors and scoring.

v4.0 replaces the v3 equations with a lookup: a vector is classified into a
"macrovector" by six equivalence classes, the macrovector's score is looked up,
and the result is lowered in proportion to how far the vector sits from the
highest-scoring vectors of its macrovector.

WORKFLOW:
1. Resolve every scored metric to its effective value (modified metrics
   override base metrics; unset threat and requirement metrics assume the
   worst case)
2. Compute the macrovector and look up its score
3. For each equivalence class, look up the next-lower macrovector score and
   the severity distance from the class' maximal vector
4. Subtract the mean proportional distance, clamp and round
"""

import math
from typing import Dict, List

from .base import CVSSParseError, Vector
from .v4_data import EQ_DEPTH, MACROVECTOR_SCORE, MAX_FRAG, SEVERITY_ORDER

THREAT_METRICS = ['E']
ENVIRONMENTAL_METRICS = [
    'CR', 'IR', 'AR', 'MAV', 'MAC', 'MAT', 'MPR', 'MUI', 'MVC', 'MVI', 'MVA', 'MSC', 'MSI', 'MSA',
]
SUPPLEMENTAL_METRICS = ['S', 'AU', 'R', 'V', 'RE', 'U']


def _round1(x: float) -> float:
    # Plain float half-up; v4 scores are published with this exact arithmetic
    return math.floor(x * 10 + 0.5) / 10


_IMPACT_METRICS = ('VC', 'VI', 'VA', 'SC', 'SI', 'SA')


class V4(Vector):
    """A CVSS v4.0 vector"""

    METRICS = (
        ('AV', ('N', 'A', 'L', 'P')),
        ('AC', ('L', 'H')),
        ('AT', ('N', 'P')),
        ('PR', ('N', 'L', 'H')),
        ('UI', ('N', 'P', 'A')),
        ('VC', ('H', 'L', 'N')),
        ('VI', ('H', 'L', 'N')),
        ('VA', ('H', 'L', 'N')),
        ('SC', ('H', 'L', 'N')),
        ('SI', ('H', 'L', 'N')),
        ('SA', ('H', 'L', 'N')),
        ('E', ('X', 'A', 'P', 'U')),
        ('CR', ('X', 'H', 'M', 'L')),
        ('IR', ('X', 'H', 'M', 'L')),
        ('AR', ('X', 'H', 'M', 'L')),
        ('MAV', ('X', 'N', 'A', 'L', 'P')),
        ('MAC', ('X', 'L', 'H')),
        ('MAT', ('X', 'N', 'P')),
        ('MPR', ('X', 'N', 'L', 'H')),
        ('MUI', ('X', 'N', 'P', 'A')),
        ('MVC', ('X', 'H', 'L', 'N')),
        ('MVI', ('X', 'H', 'L', 'N')),
        ('MVA', ('X', 'H', 'L', 'N')),
        ('MSC', ('X', 'H', 'L', 'N')),
        ('MSI', ('X', 'S', 'H', 'L', 'N')),
        ('MSA', ('X', 'S', 'H', 'L', 'N')),
        ('S', ('X', 'P', 'N')),
        ('AU', ('X', 'N', 'Y')),
        ('R', ('X', 'A', 'U', 'I')),
        ('V', ('X', 'D', 'C')),
        ('RE', ('X', 'L', 'M', 'H')),
        ('U', ('X', 'Red', 'Amber', 'Green', 'Clear')),
    )
    BASE_METRICS = 11
    PREFIX = "CVSS"
    STRICT_ORDER = True

    @classmethod
    def _check_version(cls, version: str, vector: str):
        if version != "4.0":
            raise CVSSParseError(f"unknown CVSS version {version!r}", vector, 5)

    def has_threat(self) -> bool:
        return self._any_set(THREAT_METRICS)

    # Threat metrics play the role v3 temporal metrics did.
    has_temporal = has_threat

    def has_environmental(self) -> bool:
        return self._any_set(ENVIRONMENTAL_METRICS)

    def effective(self, metric: str) -> str:
        """
        Value of a metric as used for scoring

        Modified base metrics take precedence over their base metric. An unset
        Exploit Maturity counts as Attacked and unset security requirements
        count as High.
        """
        value = self._values.get(metric, 'X')
        if metric == 'E' and value == 'X':
            return 'A'
        if metric in ('CR', 'IR', 'AR') and value == 'X':
            return 'H'
        modified = self._values.get('M' + metric, 'X')
        if modified != 'X':
            return modified
        return value

    def macrovector(self) -> str:
        """Equivalence class levels EQ1 through EQ6 as a six-digit string"""
        m = self.effective

        if m('AV') == 'N' and m('PR') == 'N' and m('UI') == 'N':
            eq1 = 0
        elif (m('AV') == 'N' or m('PR') == 'N' or m('UI') == 'N') and m('AV') != 'P':
            eq1 = 1
        else:
            eq1 = 2

        eq2 = 0 if m('AC') == 'L' and m('AT') == 'N' else 1

        if m('VC') == 'H' and m('VI') == 'H':
            eq3 = 0
        elif m('VC') == 'H' or m('VI') == 'H' or m('VA') == 'H':
            eq3 = 1
        else:
            eq3 = 2

        if m('SI') == 'S' or m('SA') == 'S':
            eq4 = 0
        elif m('SC') == 'H' or m('SI') == 'H' or m('SA') == 'H':
            eq4 = 1
        else:
            eq4 = 2

        eq5 = {'A': 0, 'P': 1, 'U': 2}[m('E')]

        if ((m('CR') == 'H' and m('VC') == 'H') or
                (m('IR') == 'H' and m('VI') == 'H') or
                (m('AR') == 'H' and m('VA') == 'H')):
            eq6 = 0
        else:
            eq6 = 1

        return f"{eq1}{eq2}{eq3}{eq4}{eq5}{eq6}"

    def _lower_scores(self, levels: List[int]) -> Dict[str, float]:
        """Scores of the next-lower macrovector in each equivalence class; NaN when absent"""
        def lookup(lv):
            return MACROVECTOR_SCORE.get("".join(str(x) for x in lv), math.nan)

        def bumped(*idx):
            lv = list(levels)
            for i in idx:
                lv[i] += 1
            return lookup(lv)

        eq3, eq6 = levels[2], levels[5]
        if (eq3, eq6) in ((1, 1), (0, 1)):
            eq36 = bumped(2)
        elif (eq3, eq6) == (1, 0):
            eq36 = bumped(5)
        elif (eq3, eq6) == (0, 0):
            left, right = bumped(2), bumped(5)
            eq36 = left if left > right else right
        else:
            eq36 = bumped(2, 5)

        return {
            'eq1': bumped(0),
            'eq2': bumped(1),
            'eq36': eq36,
            'eq4': bumped(3),
            'eq5': bumped(4),
        }

    def _distances(self, max_vector: Dict[str, str]) -> Dict[str, int]:
        return {
            metric: order.index(self.effective(metric)) - order.index(max_vector[metric])
            for metric, order in SEVERITY_ORDER.items()
        }

    def _max_vectors(self, levels: List[int]):
        eq36_index = levels[5] + levels[2] * 2
        for f1 in MAX_FRAG['eq1'][levels[0]]:
            for f2 in MAX_FRAG['eq2'][levels[1]]:
                for f36 in MAX_FRAG['eq36'][eq36_index]:
                    for f4 in MAX_FRAG['eq4'][levels[3]]:
                        for f5 in MAX_FRAG['eq5'][levels[4]]:
                            frag = "/".join((f1, f2, f36, f4, f5))
                            yield dict(elem.split(":") for elem in frag.split("/"))

    def score(self) -> float:
        if all(self.effective(m) == 'N' for m in _IMPACT_METRICS):
            return 0.0

        mv = self.macrovector()
        levels = [int(c) for c in mv]
        value = MACROVECTOR_SCORE[mv]

        dist = None
        for max_vector in self._max_vectors(levels):
            dist = self._distances(max_vector)
            if all(d >= 0 for d in dist.values()):
                break

        current = {
            'eq1': dist['AV'] + dist['PR'] + dist['UI'],
            'eq2': dist['AC'] + dist['AT'],
            'eq36': (dist['VC'] + dist['VI'] + dist['VA'] +
                     dist['CR'] + dist['IR'] + dist['AR']),
            'eq4': dist['SC'] + dist['SI'] + dist['SA'],
            'eq5': 0,
        }
        depth = {
            'eq1': EQ_DEPTH['eq1'][levels[0]],
            'eq2': EQ_DEPTH['eq2'][levels[1]],
            'eq36': EQ_DEPTH['eq36'][levels[5] + levels[2] * 2],
            'eq4': EQ_DEPTH['eq4'][levels[3]],
            'eq5': EQ_DEPTH['eq5'][levels[4]],
        }

        lower = self._lower_scores(levels)
        total = 0.0
        n = 0
        for eq, low in lower.items():
            available = value - low
            if math.isnan(available):
                continue
            n += 1
            total += available * (current[eq] / depth[eq])

        mean = total / n if n else 0.0
        value = min(max(value - mean, 0.0), 10.0)
        return _round1(value)


def parse_v4(s: str) -> V4:
    return V4.parse(s)
