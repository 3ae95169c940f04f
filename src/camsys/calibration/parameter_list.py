from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

PARAMETER_LIST_TAG = "ParameterList"
PARAMETER_TAG = "Parameter"

_ARRAY_SPLIT = re.compile(r"[,\s]+")


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str
    value: str


def parse_array(text: str) -> list[str]:
    """Split a `{ a, b, c }` array literal into its element strings."""
    body = text.strip()
    if body.startswith("{"):
        body = body[1:]
    if body.endswith("}"):
        body = body[:-1]
    return [tok for tok in _ARRAY_SPLIT.split(body.strip()) if tok]


def format_array(values) -> str:
    return "{ " + ", ".join(str(v) for v in values) + " }"


class ParameterList:
    """
    Read-only view of a nested XML parameter list:

      <ParameterList name="...">
        <Parameter name="..." type="double|int|size_t|bool|string" value="..." />
        <ParameterList name="..."> ... </ParameterList>
      </ParameterList>
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._parameters: dict[str, Parameter] = {}
        self._sublists: dict[str, ParameterList] = {}

    @classmethod
    def from_element(cls, elem: ET.Element) -> "ParameterList":
        if elem.tag != PARAMETER_LIST_TAG:
            raise ValueError(f"expected <{PARAMETER_LIST_TAG}>, got <{elem.tag}>")
        plist = cls(elem.get("name"))
        for child in elem:
            if child.tag == PARAMETER_TAG:
                name = child.get("name")
                if name is None or child.get("value") is None:
                    raise ValueError(f"<{PARAMETER_TAG}> needs name and value attributes")
                plist._parameters[name] = Parameter(name=name, type=child.get("type", "string"), value=child.get("value", ""))
            elif child.tag == PARAMETER_LIST_TAG:
                name = child.get("name")
                if name is None:
                    raise ValueError(f"nested <{PARAMETER_LIST_TAG}> needs a name attribute")
                plist._sublists[name] = cls.from_element(child)
        return plist

    def is_parameter(self, name: str) -> bool:
        return name in self._parameters

    def is_sublist(self, name: str) -> bool:
        return name in self._sublists

    def sublist(self, name: str) -> "ParameterList":
        try:
            return self._sublists[name]
        except KeyError:
            raise KeyError(f"missing parameter list {name!r}") from None

    def _raw(self, name: str) -> str:
        try:
            return self._parameters[name].value
        except KeyError:
            raise KeyError(f"missing parameter {name!r}") from None

    def get_string(self, name: str) -> str:
        return self._raw(name)

    def get_double(self, name: str) -> float:
        return float(self._raw(name))

    def get_int(self, name: str) -> int:
        return int(self._raw(name).strip())

    def get_double_array(self, name: str, size: int | None = None) -> list[float]:
        values = [float(t) for t in parse_array(self._raw(name))]
        if size is not None and len(values) != size:
            raise ValueError(f"parameter {name!r} needs {size} values, got {len(values)}")
        return values

    def get_int_array(self, name: str, size: int | None = None) -> list[int]:
        values = [int(t) for t in parse_array(self._raw(name))]
        if size is not None and len(values) != size:
            raise ValueError(f"parameter {name!r} needs {size} values, got {len(values)}")
        return values


class ParameterListWriter:
    """Builds a parameter list document in insertion order."""

    def __init__(self) -> None:
        self._root = ET.Element(PARAMETER_LIST_TAG)
        self._stack = [self._root]

    def comment(self, text: str) -> None:
        self._stack[-1].append(ET.Comment(f" {text} "))

    def parameter(self, name: str, type_: str, value: str) -> None:
        ET.SubElement(self._stack[-1], PARAMETER_TAG, {"name": name, "type": type_, "value": value})

    def string(self, name: str, value: str) -> None:
        self.parameter(name, "string", value)

    def double(self, name: str, value: float) -> None:
        self.parameter(name, "double", repr(float(value)))

    def integer(self, name: str, value: int) -> None:
        self.parameter(name, "int", str(int(value)))

    def boolean(self, name: str, value: bool) -> None:
        self.parameter(name, "bool", "true" if value else "false")

    @contextmanager
    def sublist(self, name: str) -> Iterator[None]:
        elem = ET.SubElement(self._stack[-1], PARAMETER_LIST_TAG, {"name": name})
        self._stack.append(elem)
        try:
            yield
        finally:
            self._stack.pop()

    def to_string(self) -> str:
        root = self._root
        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="unicode") + "\n"

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.write_text(self.to_string(), encoding="utf-8")
        return path
