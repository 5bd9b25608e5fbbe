"""
Streaming Path Matcher
======================

lxml XMLPullParser 기반 증분 XML 스캐너
- 청크 단위로 feed (문서 전체를 메모리에 올리지 않음)
- 열린 엘리먼트 경로를 스택으로 추적
- 대상 경로와 일치하는 서브트리가 닫히는 순간 직렬화하여 반환
- 매칭되지 않은 엘리먼트는 닫히는 즉시 해제

경로 문법:
- "/A/B/C"   : 루트부터의 절대 경로
- "//A/B/C"  : 임의 깊이에서 끝부분이 일치하는 경로
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Optional

from lxml import etree

from bods_producer.common.errors import ParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchedNode:
    """대상 경로와 일치한 서브트리 하나"""
    index: int
    path: str
    markup: bytes

    @property
    def size(self) -> int:
        return len(self.markup)


def parse_target_path(target_path: str) -> tuple[bool, tuple[str, ...]]:
    """
    대상 경로 문자열 파싱

    Args:
        target_path: "/A/B" 또는 "//A/B"

    Returns:
        (임의 깊이 매칭 여부, 엘리먼트 이름 튜플)
    """
    path = target_path.strip()
    anywhere = path.startswith("//")
    body = path[2:] if anywhere else path.lstrip("/")

    segments = tuple(body.split("/"))
    if not body or any(not segment for segment in segments):
        raise ValueError(f"Invalid target path: {target_path!r}")
    if any("*" in segment or "[" in segment for segment in segments):
        raise ValueError(f"Wildcards and predicates are not supported: {target_path!r}")

    return anywhere, segments


def _local_name(element) -> str:
    return etree.QName(element).localname


class PathMatcher:
    """
    대상 경로 서브트리를 증분으로 찾아내는 매처

    한 문서당 하나의 인스턴스를 사용한다. feed()/close()는 예외를 던지지 않고
    파싱 실패 시 error 속성에 ParseError를 남긴다.
    """

    def __init__(self, target_path: str):
        self.target_path = target_path
        self._anywhere, self._target = parse_target_path(target_path)

        self._parser = etree.XMLPullParser(
            events=("start", "end"),
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
        )

        self._stack: list[str] = []
        self._capture_depth: Optional[int] = None
        self._root_closed = False
        self._ended = False
        self._blank = True

        self.error: Optional[ParseError] = None
        self.match_count = 0
        self.bytes_fed = 0

    @property
    def ended(self) -> bool:
        return self._ended

    def feed(self, chunk: bytes) -> list[MatchedNode]:
        """
        청크 하나를 파서에 전달

        Args:
            chunk: XML 바이트 조각

        Returns:
            이 청크로 완성된 MatchedNode 리스트 (문서 순서)
        """
        if self._ended or self.error is not None or not chunk:
            return []

        # 루트가 닫힌 뒤의 바이트는 무시
        if self._root_closed:
            return []

        self.bytes_fed += len(chunk)
        if self._blank and chunk.strip():
            self._blank = False

        try:
            self._parser.feed(chunk)
        except etree.XMLSyntaxError as e:
            matches = self._read_events()
            if not self._root_closed:
                self._fail(e)
            else:
                logger.debug(f"Ignoring trailing content after root element: {e}")
            return matches

        return self._read_events()

    def close(self) -> list[MatchedNode]:
        """
        입력 종료 처리

        Returns:
            남아 있던 MatchedNode 리스트
        """
        if self._ended:
            return []
        self._ended = True

        if self.error is not None or self._root_closed or self._blank:
            return []

        try:
            self._parser.close()
        except etree.XMLSyntaxError as e:
            matches = self._read_events()
            self._fail(e)
            return matches

        return self._read_events()

    async def matches(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[MatchedNode]:
        """
        청크 스트림을 소비하며 매칭 결과를 문서 순서대로 yield

        루트가 닫힌 뒤에도 소스 스트림은 끝까지 읽는다.

        Raises:
            ParseError: 마크업이 잘못된 경우 (이전까지의 매칭은 모두 yield된 뒤)
        """
        async for chunk in chunks:
            for node in self.feed(chunk):
                yield node
            if self.error is not None:
                raise self.error

        for node in self.close():
            yield node
        if self.error is not None:
            raise self.error

        logger.debug(
            f"Matcher ended: {self.match_count} matches, {self.bytes_fed:,} bytes"
        )

    def _fail(self, exc: etree.XMLSyntaxError) -> None:
        self.error = ParseError(f"Malformed XML at {self._current_path() or '/'}: {exc}")
        self._ended = True
        logger.error(f"XML parse failed after {self.match_count} matches: {exc}")

    def _read_events(self) -> list[MatchedNode]:
        matches = []

        for event, element in self._parser.read_events():
            if event == "start":
                self._stack.append(_local_name(element))
                if self._capture_depth is None and self._is_target():
                    self._capture_depth = len(self._stack)
                continue

            depth = len(self._stack)
            if self._capture_depth == depth:
                matches.append(self._emit(element))
                self._capture_depth = None
                self._release(element)
            elif self._capture_depth is None:
                self._release(element)

            self._stack.pop()
            if not self._stack:
                self._root_closed = True

        return matches

    def _is_target(self) -> bool:
        size = len(self._target)
        if self._anywhere:
            return len(self._stack) >= size and tuple(self._stack[-size:]) == self._target
        return tuple(self._stack) == self._target

    def _emit(self, element) -> MatchedNode:
        node = MatchedNode(
            index=self.match_count,
            path=self._current_path(),
            markup=etree.tostring(element, with_tail=False),
        )
        self.match_count += 1
        return node

    def _current_path(self) -> str:
        return "/" + "/".join(self._stack) if self._stack else ""

    @staticmethod
    def _release(element) -> None:
        # 닫힌 엘리먼트와 앞선 형제 노드를 트리에서 제거
        element.clear()
        parent = element.getparent()
        if parent is not None:
            while element.getprevious() is not None:
                del parent[0]


async def iter_matches(
    chunks: AsyncIterable[bytes],
    target_path: str,
) -> AsyncIterator[MatchedNode]:
    """문서 하나에 대한 매칭 시퀀스 (호출마다 새 매처)"""
    matcher = PathMatcher(target_path)
    async for node in matcher.matches(chunks):
        yield node
