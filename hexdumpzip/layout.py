"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Segment layout: orders discovered structures and accounts for every byte.
"""

import logging
from typing import Callable, Iterable, Optional

from .errors import OverlappingSegments
from .hexdumper import COMPACT_BLOB, Hexdumper
from .records import ByteSource, dump_blob
from .structures import Segment

logger = logging.getLogger(__name__)


class SegmentLayout:
    """Sorted view of a segment set that renders gaps between segments.

    Example:
        layout = SegmentLayout(segments)
        layout.dump(dumper, source, render_segment, file_size)
    """

    def __init__(self, segments: Iterable[Segment]):
        self.segments = sorted(segments, key=lambda segment: segment.offset)

    def dump(
        self,
        dumper: Hexdumper,
        source: ByteSource,
        render: Callable[[Segment], int],
        file_size: Optional[int] = None,
    ) -> int:
        """Render every segment in file order.

        Bytes not claimed by any segment are rendered as "(unused space)",
        including any bytes between the last segment and 'file_size'.

        Args:
            dumper: Transcript writer.
            source: Reader used for gap bytes.
            render: Renders one segment and returns the bytes it consumed.
            file_size: Total size of the archive, if known.

        Returns:
            Offset just past the last byte rendered.

        Raises:
            OverlappingSegments: If a segment starts before the previous one ended.
        """
        cursor = 0
        for segment in self.segments:
            if segment.offset > cursor:
                dump_unused_space(dumper, source, cursor, segment.offset - cursor)
                cursor = segment.offset
            elif segment.offset < cursor:
                raise OverlappingSegments(segment.offset, cursor)

            consumed = render(segment)
            logger.debug("Rendered %s at 0x%x (%d bytes)", type(segment.kind).__name__, segment.offset, consumed)
            cursor += consumed

        if file_size is not None and file_size > cursor:
            dump_unused_space(dumper, source, cursor, file_size - cursor)
            cursor = file_size
        return cursor


def dump_unused_space(dumper: Hexdumper, source: ByteSource, offset: int, length: int) -> None:
    logger.debug("Unused space at 0x%x (%d bytes)", offset, length)
    dumper.write_section_header(offset, "(unused space)")
    dump_blob(dumper, source, offset, length, COMPACT_BLOB)
