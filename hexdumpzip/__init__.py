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
hexdump-zip - annotated hex dumps of ZIP and ZIP64 archives.

Every byte of an archive is shown exactly once, with structural fields
labelled and free-form regions overlaid with their text.
"""

from typing import BinaryIO, TextIO

from .hexdumper import Hexdumper
from .reader import ZipfileDumper
from .stream import StreamingDumper


def dump_zipfile(input_file: str | BinaryIO, output: TextIO, streaming: bool = False) -> None:
    """Write the annotated transcript of an archive.

    Args:
        input_file: Path to the archive or binary file-like object. Random-access
            mode needs it to be seekable.
        output: Text sink receiving the transcript.
        streaming: Read in a single forward pass instead of starting from the
            central directory.

    Raises:
        ZipDumpError: If the archive cannot be dumped.
    """
    dumper_class = StreamingDumper if streaming else ZipfileDumper
    with dumper_class(input_file, output) as dumper:
        dumper.dump()


__all__ = ["ZipfileDumper", "StreamingDumper", "Hexdumper", "dump_zipfile"]

__version__ = "0.1.0"
