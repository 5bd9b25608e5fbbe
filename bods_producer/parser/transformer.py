"""
VehicleActivity Record Transformer
==================================

매칭된 VehicleActivity 서브트리(XML)를 중첩 dict 레코드로 변환
- 엘리먼트 로컬 이름 → 키 (네임스페이스 제거)
- 같은 이름의 형제 엘리먼트 → 리스트
- 리프 텍스트 → trim 후 숫자 변환 (int / float)
- 속성은 무시
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Optional, Union

from lxml import etree

from bods_producer.common.errors import RecordDecodeError

TEXT_KEY = "#text"

_INT_RE = re.compile(r"^-?(0|[1-9]\d{0,14})$")
_FLOAT_RE = re.compile(r"^-?(0|[1-9]\d*)?\.\d+([eE][-+]?\d+)?$|^-?(0|[1-9]\d*)[eE][-+]?\d+$")

_parser = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    remove_pis=True,
    huge_tree=True,
)


def coerce_scalar(text: str) -> Union[str, int, float]:
    """리프 텍스트를 숫자로 변환 (ID처럼 앞자리 0이 있는 값은 문자열 유지)"""
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text


def element_to_value(element) -> Any:
    """엘리먼트 하나를 dict / 스칼라로 변환"""
    children = [child for child in element if isinstance(child.tag, str)]
    text = (element.text or "").strip()

    if not children:
        return coerce_scalar(text)

    value: dict[str, Any] = {}
    for child in children:
        key = etree.QName(child).localname
        child_value = element_to_value(child)

        if key not in value:
            value[key] = child_value
        elif isinstance(value[key], list):
            value[key].append(child_value)
        else:
            value[key] = [value[key], child_value]

    if text:
        value[TEXT_KEY] = coerce_scalar(text)

    return value


def _lookup(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


@dataclass(frozen=True)
class VehicleActivityRecord:
    """VehicleActivity 하나를 디코딩한 레코드"""
    data: MappingProxyType
    source_index: Optional[int] = None

    @property
    def payload(self) -> dict:
        """직렬화용 dict (복사본)"""
        return dict(self.data)

    @property
    def journey(self) -> dict:
        journey = _lookup(self.data, "MonitoredVehicleJourney")
        return journey if isinstance(journey, dict) else {}

    @property
    def recorded_at(self) -> Optional[str]:
        value = self.data.get("RecordedAtTime")
        return str(value) if value not in (None, "") else None

    @property
    def vehicle_ref(self) -> Optional[str]:
        value = self.journey.get("VehicleRef")
        return str(value) if value not in (None, "") else None

    @property
    def operator_ref(self) -> Optional[str]:
        value = self.journey.get("OperatorRef")
        return str(value) if value not in (None, "") else None

    @property
    def line_ref(self) -> Optional[str]:
        value = self.journey.get("LineRef")
        return str(value) if value not in (None, "") else None

    @property
    def latitude(self) -> Optional[float]:
        value = _lookup(self.journey, "VehicleLocation", "Latitude")
        return float(value) if isinstance(value, (int, float)) else None

    @property
    def longitude(self) -> Optional[float]:
        value = _lookup(self.journey, "VehicleLocation", "Longitude")
        return float(value) if isinstance(value, (int, float)) else None

    @property
    def message_key(self) -> Optional[str]:
        """파티션 키 (차량별 순서 보장용)"""
        if not self.vehicle_ref:
            return None
        if self.operator_ref:
            return f"{self.operator_ref}:{self.vehicle_ref}"
        return self.vehicle_ref


def transform(markup: Union[bytes, str], source_index: Optional[int] = None) -> VehicleActivityRecord:
    """
    매칭된 서브트리 마크업을 레코드로 변환

    Args:
        markup: 서브트리 XML (루트가 VehicleActivity)
        source_index: 문서 내 매칭 순번

    Returns:
        VehicleActivityRecord

    Raises:
        RecordDecodeError: XML이 잘못되었거나, 너무 깊게 중첩되었거나, 루트 값이 dict가 아닌 경우
    """
    if isinstance(markup, str):
        markup = markup.encode("utf-8")

    try:
        root = etree.fromstring(markup, _parser)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise RecordDecodeError(f"Invalid record markup: {e}") from e

    try:
        value = element_to_value(root)
    except RecursionError as e:
        raise RecordDecodeError(
            f"Record <{etree.QName(root).localname}> is nested too deeply"
        ) from e

    if not isinstance(value, dict):
        raise RecordDecodeError(
            f"Record <{etree.QName(root).localname}> has no child elements"
        )

    return VehicleActivityRecord(data=MappingProxyType(value), source_index=source_index)
