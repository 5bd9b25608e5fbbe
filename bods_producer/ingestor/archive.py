"""
Streaming Archive Demultiplexer
===============================

BODS bulk 아카이브(ZIP)를 한 번의 순차 읽기로 풀어내는 유틸리티
- stream-unzip 기반 (seek 불가능한 HTTP 응답 스트림에서 동작)
- 엔트리는 순서대로 하나씩만 접근 가능
- 다음 엔트리로 넘어가기 전에 현재 엔트리를 끝까지 읽어야 함
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Optional

from stream_unzip import UnzipError, async_stream_unzip

from bods_producer.common.errors import FetchErrorType, TransportError

logger = logging.getLogger(__name__)


class EntryKind(Enum):
    """아카이브 엔트리 유형"""
    FILE = "File"
    DIRECTORY = "Directory"


@dataclass
class ArchiveEntry:
    """아카이브 엔트리 하나 (순회 중에만 유효)"""
    path: str
    kind: EntryKind
    size: Optional[int]
    _chunks: AsyncIterator[bytes] = field(repr=False)
    _drained: bool = field(default=False, repr=False)

    @property
    def drained(self) -> bool:
        return self._drained

    async def content(self) -> AsyncIterator[bytes]:
        """압축 해제된 청크 스트림"""
        async for chunk in self._chunks:
            yield chunk
        self._drained = True

    async def drain(self) -> int:
        """
        남은 내용을 읽어서 버림 (디코딩 결과는 사용하지 않음)

        Returns:
            버린 바이트 수
        """
        discarded = 0
        if self._drained:
            return discarded
        async for chunk in self._chunks:
            discarded += len(chunk)
        self._drained = True
        return discarded


async def iter_archive_entries(
    zipped_chunks: AsyncIterable[bytes],
) -> AsyncIterator[ArchiveEntry]:
    """
    ZIP 스트림에서 엔트리를 순서대로 yield

    소비자가 끝까지 읽지 않은 엔트리는 다음 엔트리 전에 자동으로 drain된다.

    Args:
        zipped_chunks: 압축된 바이트 청크 스트림

    Yields:
        ArchiveEntry

    Raises:
        TransportError: ZIP 포맷 오류
    """
    try:
        async for file_name, file_size, unzipped_chunks in async_stream_unzip(zipped_chunks):
            path = file_name.decode("utf-8", errors="replace")
            kind = EntryKind.DIRECTORY if path.endswith("/") else EntryKind.FILE
            entry = ArchiveEntry(
                path=path,
                kind=kind,
                size=file_size,
                _chunks=unzipped_chunks,
            )

            yield entry

            if not entry.drained:
                await entry.drain()

    except UnzipError as e:
        raise TransportError(
            f"Failed to decompress archive: {e!r}",
            error_type=FetchErrorType.ARCHIVE_ERROR,
        ) from e


async def select_entry(
    zipped_chunks: AsyncIterable[bytes],
    entry_path: str,
) -> AsyncIterator[bytes]:
    """
    지정한 엔트리의 압축 해제 청크만 yield

    나머지 엔트리는 drain하며, 아카이브 끝까지 읽은 뒤 종료한다.

    Args:
        zipped_chunks: 압축된 바이트 청크 스트림
        entry_path: 파싱할 엔트리 경로 (예: "siri.xml")
    """
    found = False
    entry_count = 0

    async for entry in iter_archive_entries(zipped_chunks):
        entry_count += 1
        size = f"{entry.size} bytes" if entry.size is not None else "unknown size"
        logger.info(f'Parsing {entry.kind.value.lower()} "{entry.path}" ({size})')

        if entry.kind is EntryKind.FILE and entry.path == entry_path and not found:
            found = True
            async for chunk in entry.content():
                yield chunk
        else:
            discarded = await entry.drain()
            logger.debug(f'Skipped "{entry.path}" ({discarded:,} bytes discarded)')

    logger.info(f"Archive closed: {entry_count} entries")

    if not found:
        logger.warning(f'Entry "{entry_path}" not found in archive')
