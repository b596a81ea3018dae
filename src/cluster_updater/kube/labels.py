"""Label selectors.

Two sources produce the same ``Selector``:
  - selector strings as used in API query params (``a=b,c!=d,e,!f``)
  - ``LabelSelector`` objects from workload specs (``matchLabels`` plus
    ``matchExpressions`` with In, NotIn, Exists, DoesNotExist)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

OPERATORS = frozenset({'In', 'NotIn', 'Exists', 'DoesNotExist'})


class SelectorError(ValueError):
    """Raised for a malformed label selector."""


@dataclass(frozen=True, slots=True)
class Requirement:
    key: str
    operator: str
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == 'Exists':
            return self.key in labels
        if self.operator == 'DoesNotExist':
            return self.key not in labels
        if self.operator == 'In':
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches objects without the key.
        return labels.get(self.key) not in self.values

    def __str__(self) -> str:
        if self.operator == 'Exists':
            return self.key
        if self.operator == 'DoesNotExist':
            return f'!{self.key}'
        if len(self.values) == 1:
            (value,) = self.values
            return f'{self.key}={value}' if self.operator == 'In' else f'{self.key}!={value}'
        op = 'in' if self.operator == 'In' else 'notin'
        return f'{self.key} {op} ({",".join(sorted(self.values))})'


@dataclass(frozen=True, slots=True)
class Selector:
    """Conjunction of requirements. An empty selector matches everything."""

    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    @property
    def empty(self) -> bool:
        return not self.requirements

    def __str__(self) -> str:
        return ','.join(str(req) for req in self.requirements)


def parse_selector(text: str) -> Selector:
    """Parse an equality-based selector string."""
    requirements: list[Requirement] = []
    for raw in text.split(','):
        term = raw.strip()
        if not term:
            continue
        if '!=' in term:
            key, value = (part.strip() for part in term.split('!=', 1))
            requirements.append(Requirement(_check_key(key, text), 'NotIn', frozenset({value})))
        elif '=' in term:
            key, value = term.replace('==', '=', 1).split('=', 1)
            requirements.append(Requirement(_check_key(key.strip(), text), 'In', frozenset({value.strip()})))
        elif term.startswith('!'):
            requirements.append(Requirement(_check_key(term[1:].strip(), text), 'DoesNotExist'))
        else:
            requirements.append(Requirement(_check_key(term, text), 'Exists'))
    return Selector(tuple(requirements))


def selector_from_spec(spec: Mapping[str, Any] | None) -> Selector:
    """Build a selector from a ``LabelSelector`` object."""
    if spec is None:
        raise SelectorError('workload has no label selector')

    requirements = [
        Requirement(key, 'In', frozenset({value}))
        for key, value in sorted((spec.get('matchLabels') or {}).items())
    ]
    for expr in spec.get('matchExpressions') or []:
        operator = expr.get('operator')
        if operator not in OPERATORS:
            raise SelectorError(f'unsupported selector operator {operator!r}')
        values = frozenset(expr.get('values') or ())
        if operator in ('In', 'NotIn') and not values:
            raise SelectorError(f'operator {operator} requires values for key {expr.get("key")!r}')
        requirements.append(Requirement(_check_key(expr.get('key', ''), str(expr)), operator, values))
    return Selector(tuple(requirements))


def _check_key(key: str, source: str) -> str:
    if not key or any(c.isspace() for c in key):
        raise SelectorError(f'invalid label key in selector {source!r}')
    return key
