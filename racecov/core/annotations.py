"""Reader for usage-point annotations embedded in C samples.

Annotated samples mark each shared access with the fact the analysis is
expected to produce, e.g.::

    g = 4;    // usagePoint: "WRITE:[t2:{t1=PARENT_THREAD, t2=CREATED_THREAD},[]]"
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from racecov.core.models import (
    AccessKind, CodeLocation, LockSet, ThreadRelation, ThreadStateSet, UsagePoint, make_lock
)
from racecov.utils import AnnotationParseError


ANNOTATION_PATTERN = re.compile(r'//\s*usagePoint:\s*"([^"]*)"')
USAGE_PATTERN = re.compile(
    r'^\s*(?P<access>READ|WRITE)\s*:\s*\[\s*(?P<thread>[\w.$]+)\s*:\s*'
    r'\{(?P<states>[^}]*)\}\s*,\s*\[(?P<locks>[^\]]*)\]\s*\]\s*$'
)
ASSIGNMENT_PATTERN = re.compile(r'^\s*\**\s*([A-Za-z_]\w*)\s*(?:\[[^\]]*\])?\s*(?:[-+*/%&|^]|<<|>>)?=(?!=)')
IDENTIFIER_PATTERN = re.compile(r'[A-Za-z_]\w*')
C_KEYWORDS = {
    'if', 'else', 'while', 'for', 'do', 'return', 'switch', 'case', 'int', 'char',
    'void', 'long', 'short', 'unsigned', 'signed', 'const', 'volatile', 'static', 'sizeof',
}


@dataclass
class UsageAnnotation:
    """Expected usage point attached to one source line."""
    line: int
    code: str
    location: Optional[str]
    expected: UsagePoint

    @property
    def text(self) -> str:
        return self.expected.render()


def parse_usage_point(text: str, location: str = "", site: Optional[CodeLocation] = None) -> UsagePoint:
    """Parse ``ACCESS:[thread:{t=REL,...},[lock,...]]`` into a UsagePoint.

    Args:
        text: Annotation text as rendered by :meth:`UsagePoint.render`
        location: Accessed variable, if known
        site: Program location of the access

    Returns:
        The parsed UsagePoint

    Raises:
        AnnotationParseError: If the text does not follow the convention
    """
    match = USAGE_PATTERN.match(text)
    if not match:
        raise AnnotationParseError(f"Malformed usage point: {text!r}")

    entries = {}
    for item in filter(None, (part.strip() for part in match.group('states').split(','))):
        if '=' not in item:
            raise AnnotationParseError(f"Malformed thread state entry {item!r} in {text!r}")
        thread_id, relation = item.split('=', 1)
        try:
            entries[thread_id.strip()] = ThreadRelation.parse(relation)
        except ValueError as e:
            raise AnnotationParseError(f"{e} in {text!r}") from e

    locks = LockSet()
    for item in filter(None, (part.strip() for part in match.group('locks').split(','))):
        if item.startswith('(') and item.endswith(')'):
            locks = locks.add(make_lock(n.strip() for n in item[1:-1].split('|')))
        else:
            locks = locks.add(make_lock([item]))

    return UsagePoint(
        location=location,
        access=AccessKind(match.group('access')),
        thread_id=match.group('thread'),
        thread_states=ThreadStateSet(entries),
        lock_set=locks,
        site=site,
    )


def _accessed_variable(code: str, access: AccessKind) -> Optional[str]:
    if access == AccessKind.WRITE:
        match = ASSIGNMENT_PATTERN.match(code)
        if match:
            return match.group(1)
    for identifier in IDENTIFIER_PATTERN.findall(code):
        if identifier not in C_KEYWORDS:
            return identifier
    return None


def extract_annotations(source: str, file_path: str = "<source>") -> List[UsageAnnotation]:
    """Collect every usage-point annotation in a C source text."""
    annotations = []
    for line_no, line in enumerate(source.splitlines(), 1):
        match = ANNOTATION_PATTERN.search(line)
        if not match:
            continue
        code = line[:match.start()].strip()
        site = CodeLocation(file_path, line_no, line_no)
        point = parse_usage_point(match.group(1), site=site)
        location = _accessed_variable(code, point.access)
        if location:
            point = UsagePoint(location, point.access, point.thread_id,
                               point.thread_states, point.lock_set, site)
        annotations.append(UsageAnnotation(line=line_no, code=code, location=location, expected=point))
    return annotations


def load_annotations(path: Union[str, Path]) -> List[UsageAnnotation]:
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        return extract_annotations(f.read(), str(path))
