#!/usr/bin/env python3
"""
Concatener - concatenate files from paths, directories and wildcard patterns

Inputs are expanded into an ordered, deduplicated list of files. Every file
is read as raw bytes, its text encoding is detected (byte-order marks, strict
UTF-8, then legacy single and multi-byte encodings) and the decoded text is
joined into one output file written in a single output encoding.

Features:
- Literal paths, directories (optionally recursive) and glob patterns
- Recursive patterns match file names at any depth below their directory
- Symlink cycle protection during directory traversal
- Parallel read/detect/decode with strictly ordered output
- Atomic output writes (nothing is written when the run fails)
"""

import argparse
import asyncio
import codecs
import fnmatch
import functools
import glob
import logging
import os
import re
import signal
import sys
import tempfile
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import chardet


# Async helper for running blocking I/O in thread pool
async def run_in_thread(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a blocking function in a thread pool.

    Uses asyncio.to_thread() for Python 3.9+,
    falls back to run_in_executor() for Python 3.8.
    """
    if sys.version_info >= (3, 9):
        return await asyncio.to_thread(func, *args, **kwargs)
    else:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, functools.partial(func, *args, **kwargs)
        )


try:
    from rich.console import Console
    from rich.markup import escape as markup_escape
    from rich.progress import (
        Progress,
        SpinnerColumn,
        TextColumn,
        BarColumn,
        TimeElapsedColumn,
        MofNCompleteColumn,
    )

    HAS_RICH = True
except ImportError:
    HAS_RICH = False
    Console = None
    Progress = None
    markup_escape = None

try:
    from tqdm import tqdm

    HAS_TQDM = True
except ImportError:
    HAS_TQDM = False
    tqdm = None


__version__ = "0.2.0"
__author__ = "Concatener Project"
__license__ = "MIT"


DEFAULT_MIN_CONFIDENCE = 0.6
STATISTICAL_SAMPLE_SIZE = 64 * 1024

_GLOB_CHARS = re.compile(r"[*?\[]")
# C0/C1 control characters except \t \n \v \f \r
_CONTROL_CHARS = re.compile("[\x00-\x08\x0e-\x1f\x7f-\x9f]")


class ConcatenerError(Exception):
    """Base exception for concatener errors"""

    pass


class NotFoundError(ConcatenerError):
    """A literal input path does not exist"""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Input path does not exist: {token}")


class NoInputFilesError(ConcatenerError):
    """Nothing was left to concatenate after expanding every input"""

    def __init__(self, tokens: Iterable[str] = ()):
        self.tokens = list(tokens)
        message = "No input files found to concatenate"
        if self.tokens:
            message += f" (inputs: {', '.join(self.tokens)})"
        super().__init__(message)


class ReadError(ConcatenerError):
    """A single input file could not be read"""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class AllFilesFailedError(ConcatenerError):
    """Every resolved input file failed to read"""

    def __init__(self, skipped: List["SkippedFile"]):
        self.skipped = skipped
        super().__init__(f"All {len(skipped)} input files failed to read")


class WriteError(ConcatenerError):
    """The output file could not be created or written"""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write output file {path}: {reason}")


class InputKind(Enum):
    LITERAL = "literal"
    GLOB = "glob"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class InputSpec:
    """A command-line input token and how it will be expanded"""

    raw: str
    kind: InputKind
    path: str


@dataclass(frozen=True)
class EncodingCandidate:
    """An encoding the detector can report, ranked by probe priority"""

    codec: str
    label: str
    rank: int
    bom: bytes = b""


@dataclass(frozen=True)
class Detected:
    """The buffer was identified as ``candidate`` by ``method``"""

    candidate: EncodingCandidate
    method: str

    @property
    def label(self) -> str:
        return self.candidate.label


@dataclass(frozen=True)
class Fallback:
    """No candidate matched; the buffer is decoded as lossy UTF-8"""

    codec: ClassVar[str] = "utf-8"
    label: ClassVar[str] = "UTF-8 (lossy)"
    method: ClassVar[str] = "fallback"


Detection = Union[Detected, Fallback]


@dataclass
class FileMetadata:
    """What was learned about one input file"""

    path: Path
    size: int
    encoding: str
    method: str


@dataclass
class DecodedFile:
    metadata: FileMetadata
    content: str


@dataclass
class SkippedFile:
    path: Path
    reason: str


@dataclass
class ConcatenationResult:
    """Concatenated text plus per-file reports and skip diagnostics"""

    text: str
    files: List[FileMetadata] = field(default_factory=list)
    skipped: List[SkippedFile] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.files)


# Checked in this order: the UTF-16LE mark is a prefix of the UTF-32LE mark
BOM_CANDIDATES: Tuple[EncodingCandidate, ...] = (
    EncodingCandidate("utf-8", "UTF-8", 0, codecs.BOM_UTF8),
    EncodingCandidate("utf-32-le", "UTF-32LE", 1, codecs.BOM_UTF32_LE),
    EncodingCandidate("utf-32-be", "UTF-32BE", 2, codecs.BOM_UTF32_BE),
    EncodingCandidate("utf-16-le", "UTF-16LE", 3, codecs.BOM_UTF16_LE),
    EncodingCandidate("utf-16-be", "UTF-16BE", 4, codecs.BOM_UTF16_BE),
)

UTF8 = EncodingCandidate("utf-8", "UTF-8", 5)

# Ordered by real-world prevalence
LEGACY_CANDIDATES: Tuple[EncodingCandidate, ...] = tuple(
    EncodingCandidate(codec, label, rank)
    for rank, (codec, label) in enumerate(
        [
            ("cp1252", "Windows-1252"),
            ("iso8859-1", "ISO-8859-1"),
            ("iso8859-15", "ISO-8859-15"),
            ("iso8859-2", "ISO-8859-2"),
            ("iso8859-5", "ISO-8859-5"),
            ("iso8859-7", "ISO-8859-7"),
            ("koi8-r", "KOI8-R"),
            ("koi8-u", "KOI8-U"),
            ("cp1251", "Windows-1251"),
            ("gbk", "GBK"),
            ("big5", "Big5"),
            ("shift_jis", "Shift-JIS"),
            ("euc_jp", "EUC-JP"),
            ("euc_kr", "EUC-KR"),
        ],
        start=UTF8.rank + 1,
    )
)

# chardet reports a subset name for some of the candidates
_STATISTICAL_ALIASES = {
    "gb2312": "gbk",
    "gb18030": "gbk",
    "cp949": "euc_kr",
}


def _codec_key(name: str) -> Optional[str]:
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


def classify_input(token: str) -> InputSpec:
    """Decide whether a token is a directory, a glob pattern or a literal path.

    An existing filesystem entry always wins over pattern syntax, so a file
    literally named ``notes[1].txt`` is never treated as a pattern.
    """
    expanded = os.path.expanduser(token)
    if os.path.isdir(expanded):
        return InputSpec(token, InputKind.DIRECTORY, expanded)
    if not os.path.lexists(expanded) and _GLOB_CHARS.search(expanded):
        return InputSpec(token, InputKind.GLOB, expanded)
    return InputSpec(token, InputKind.LITERAL, expanded)


def _is_hidden_for(name: str, pattern: str) -> bool:
    return name.startswith(".") and not pattern.startswith(".")


def _matches_name(name: str, pattern: str) -> bool:
    """Match a bare file name the way glob does, hidden files included only explicitly"""
    if _is_hidden_for(name, pattern):
        return False
    return fnmatch.fnmatch(name, pattern)


def _file_identity(path: Path) -> Union[Tuple[int, int], Path]:
    """(st_dev, st_ino) of a file, so hard links compare equal; the resolved path if stat fails"""
    try:
        st = path.stat()
    except OSError:
        return path.resolve()
    return (st.st_dev, st.st_ino)


def _is_consistent(data: bytes, candidate: EncodingCandidate) -> bool:
    """True when the whole buffer is legal, printable text in ``candidate``"""
    try:
        text = data.decode(candidate.codec)
    except UnicodeDecodeError:
        return False
    return _CONTROL_CHARS.search(text) is None


def _statistical_scores(data: bytes) -> Dict[str, float]:
    """Confidence per codec key as reported by chardet"""
    scores: Dict[str, float] = {}
    for guess in chardet.detect_all(data[:STATISTICAL_SAMPLE_SIZE]):
        name = guess.get("encoding")
        if not name:
            continue
        key = _codec_key(name)
        if key is None:
            continue
        key = _codec_key(_STATISTICAL_ALIASES.get(key, key))
        confidence = guess.get("confidence") or 0.0
        if key and confidence > scores.get(key, 0.0):
            scores[key] = confidence
    return scores


def detect_encoding(
    data: bytes,
    use_statistics: bool = True,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> Detection:
    """Detect the text encoding of a complete file buffer.

    Probes run in priority order and the first confident match wins:

    1. byte-order marks (certain)
    2. strict UTF-8 over the whole buffer (ASCII and empty included)
    3. legacy encodings in ``LEGACY_CANDIDATES`` order; chardet scores are
       consulted first, then the plain structural check
    4. ``Fallback`` (lossy UTF-8)

    Args:
        data: Full raw content of one file
        use_statistics: Consult chardet before the structural walk
        min_confidence: Minimum chardet confidence for a statistical match

    Returns:
        ``Detected`` or ``Fallback``; never raises for any input
    """
    for candidate in BOM_CANDIDATES:
        if data.startswith(candidate.bom):
            return Detected(candidate, "bom")

    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    else:
        return Detected(UTF8, "utf-8")

    if use_statistics:
        scores = _statistical_scores(data)
        for candidate in LEGACY_CANDIDATES:
            score = scores.get(_codec_key(candidate.codec), 0.0)
            if score >= min_confidence and _is_consistent(data, candidate):
                return Detected(candidate, "statistical")

    for candidate in LEGACY_CANDIDATES:
        if _is_consistent(data, candidate):
            return Detected(candidate, "structural")

    return Fallback()


def decode_bytes(data: bytes, detection: Detection) -> str:
    """Decode a buffer according to its detection, replacing illegal sequences"""
    if isinstance(detection, Detected):
        candidate = detection.candidate
        return data[len(candidate.bom):].decode(candidate.codec, errors="replace")
    return data.decode(Fallback.codec, errors="replace")


def read_file(path: Path) -> bytes:
    """Read a whole file, raising ReadError on any OS-level failure"""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ReadError(path, e.strerror or str(e)) from e


def unescape_separator(value: str) -> str:
    """Interpret backslash escapes (``\\n``, ``\\t``, ``\\x00``) in a separator"""
    return value.encode("latin-1", "backslashreplace").decode("unicode_escape")


class Concatener:
    """Resolves inputs, detects encodings and concatenates files in order"""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}

        # Pending temporary output files, removed on interruption
        self._temp_files = []

        self.console = Console() if HAS_RICH else None

        self.logger = self._setup_logging()

        max_workers_config = self.config.get("max_workers", os.cpu_count() or 4)
        if not max_workers_config or max_workers_config <= 0:
            max_workers_config = os.cpu_count() or 4
        self.max_workers = min(max_workers_config, 32)

        self.max_depth = int(self.config.get("max_depth", 50))
        if self.max_depth < 0:
            raise ValueError(f"max_depth cannot be negative: {self.max_depth}")

        self.recursive = bool(self.config.get("recursive", False))
        self.sort_entries = bool(self.config.get("sort_entries", True))
        self.separator = str(self.config.get("separator", ""))

        self.use_statistics = bool(self.config.get("use_statistics", True))
        self.min_confidence = float(
            self.config.get("min_confidence", DEFAULT_MIN_CONFIDENCE)
        )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(
                f"min_confidence must be between 0 and 1, got {self.min_confidence}"
            )

        self.output_encoding = self.config.get("output_encoding", "utf-8")
        if _codec_key(self.output_encoding) is None:
            raise ValueError(f"Unknown output encoding: {self.output_encoding}")

        # Progress bars only make sense on an interactive terminal
        self.is_tty = sys.stdout.isatty()

        self._setup_signal_handlers()

        self.stats = {
            "files_processed": 0,
            "files_skipped": 0,
            "bytes_processed": 0,
        }

    def _setup_logging(self) -> logging.Logger:
        """Setup structured logging"""
        level = logging.DEBUG if self.config.get("verbose") else logging.INFO

        logger = logging.getLogger("concatener")
        logger.setLevel(level)

        # Avoid duplicate handlers
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def _setup_signal_handlers(self):
        """Remove pending temporary files when interrupted"""

        def signal_handler(signum, frame):
            self.logger.warning("Received interrupt signal, cleaning up...")
            self._cleanup_temp_files()
            sys.exit(130)  # 128 + SIGINT (2)

        try:
            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)
        except (ValueError, OSError):
            # Only the main thread may install handlers
            pass

    def _format_size(self, size: int) -> str:
        """Format size in human-readable format"""
        if size < 0:
            return "0B"

        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if size < 1024.0:
                return f"{size:.1f}{unit}"
            size /= 1024.0
        return f"{size:.1f}PB"

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def expand_input(self, spec: InputSpec, recursive: bool = False) -> List[Path]:
        """Expand one classified input into concrete file paths.

        Raises:
            NotFoundError: a literal path does not exist
        """
        if spec.kind is InputKind.GLOB:
            return self._expand_glob(spec.path, recursive)

        path = Path(spec.path)
        if spec.kind is InputKind.DIRECTORY or path.is_dir():
            return self._scan_directory(path, recursive)

        if not path.exists():
            raise NotFoundError(spec.raw)
        if path.is_file():
            return [path]

        self.logger.warning(f"Skipping {spec.raw}: not a regular file")
        return []

    def _expand_glob(self, pattern: str, recursive: bool) -> List[Path]:
        """Expand a wildcard pattern.

        Without ``recursive`` this is plain glob. With it, the last path
        component is matched against files at every depth below the
        directory part, so ``*.txt`` also finds ``a/b/c.txt``. Patterns that
        spell out ``**`` keep the standard recursive glob meaning.
        """
        if not recursive or "**" in pattern:
            matches = glob.glob(pattern, recursive=recursive)
            if self.sort_entries:
                matches.sort()
            return [Path(match) for match in matches if os.path.isfile(match)]

        base, name_pattern = os.path.split(pattern)
        if _GLOB_CHARS.search(base):
            bases = glob.glob(base)
            if self.sort_entries:
                bases.sort()
        else:
            bases = [base or os.curdir]

        files = []
        for directory in bases:
            if os.path.isdir(directory):
                files.extend(
                    self._scan_directory(Path(directory), True, name_pattern)
                )
        return files

    def _scan_directory(
        self, root: Path, recursive: bool, name_pattern: Optional[str] = None
    ) -> List[Path]:
        """List regular files under ``root``, depth-first when recursive"""
        files = []
        visited_dirs = set()  # (st_dev, st_ino) of entered directories

        def scan(current: Path, depth: int) -> None:
            if depth > self.max_depth:
                self.logger.warning(
                    f"Maximum depth ({self.max_depth}) reached at {current}"
                )
                return

            try:
                dir_stat = current.stat()
            except OSError as e:
                self.logger.warning(f"Cannot access directory {current}: {e}")
                return

            identity = (dir_stat.st_dev, dir_stat.st_ino)
            if identity in visited_dirs:
                self.logger.debug(f"Skipping already visited directory {current}")
                return
            visited_dirs.add(identity)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                self.logger.warning(f"Cannot scan directory {current}: {e}")
                return

            if self.sort_entries:
                entries.sort(key=lambda entry: entry.name)

            for entry in entries:
                try:
                    if entry.is_file():
                        if name_pattern is None or _matches_name(
                            entry.name, name_pattern
                        ):
                            files.append(Path(entry.path))
                    elif recursive and entry.is_dir():
                        # Patterns skip hidden directories the way glob does
                        if name_pattern is not None and _is_hidden_for(
                            entry.name, name_pattern
                        ):
                            continue
                        scan(Path(entry.path), depth + 1)
                except OSError as e:
                    self.logger.warning(f"Cannot access {entry.path}: {e}")

        scan(root, 0)
        return files

    def resolve_inputs(
        self,
        tokens: Sequence[str],
        recursive: Optional[bool] = None,
        exclude: Iterable[Union[str, Path]] = (),
    ) -> Tuple[Path, ...]:
        """Expand every input token into one ordered list of unique files.

        Paths are canonicalized (absolute, symlinks resolved) and compared by
        file identity, so different spellings, symlinks and hard links of the
        same file collapse to its first occurrence. Anything in ``exclude`` is
        left out.

        Raises:
            NotFoundError: a literal input does not exist
            NoInputFilesError: nothing resolved
        """
        if recursive is None:
            recursive = self.recursive

        excluded = {Path(path).resolve() for path in exclude}
        excluded |= {_file_identity(path) for path in excluded if path.exists()}
        seen = set()
        resolved: List[Path] = []

        for token in tokens:
            spec = classify_input(token)
            matches = self.expand_input(spec, recursive)
            if not matches:
                self.logger.debug(f"No files matched {token} ({spec.kind.value})")

            for path in matches:
                canonical = path.resolve()
                identity = _file_identity(canonical)
                if canonical in excluded or identity in excluded:
                    self.logger.info(f"Skipping {canonical}: it is the output file")
                    continue
                if identity in seen:
                    continue
                seen.add(identity)
                resolved.append(canonical)

        if not resolved:
            raise NoInputFilesError(tokens)

        self.logger.debug(f"Resolved {len(resolved)} input files")
        return tuple(resolved)

    # ------------------------------------------------------------------
    # Decoding and concatenation
    # ------------------------------------------------------------------

    def _process_file(self, path: Path) -> DecodedFile:
        """Read, detect and decode one file (runs on worker threads)"""
        data = read_file(path)
        detection = detect_encoding(
            data, use_statistics=self.use_statistics, min_confidence=self.min_confidence
        )
        metadata = FileMetadata(
            path=path,
            size=len(data),
            encoding=detection.label,
            method=detection.method,
        )
        return DecodedFile(metadata, decode_bytes(data, detection))

    @contextmanager
    def _progress(self, total: int, description: str, enabled: bool) -> Iterator[Callable[[], None]]:
        """Yield a callable that advances a rich, tqdm or plain progress display"""
        use_rich_progress = enabled and HAS_RICH and self.console and self.is_tty
        use_tqdm_progress = (
            enabled and HAS_TQDM and tqdm and self.is_tty and not use_rich_progress
        )

        if use_rich_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self.console,
            ) as progress_bar:
                task = progress_bar.add_task(description, total=total)
                yield lambda: progress_bar.update(task, advance=1)
        elif use_tqdm_progress:
            pbar = tqdm(total=total, desc=description, unit="files")
            try:
                yield lambda: pbar.update(1)
            finally:
                pbar.close()
        elif enabled:
            completed = 0

            def advance() -> None:
                nonlocal completed
                completed += 1
                if completed % 50 == 0:
                    print(f"{description}: {completed}/{total} files...", end="\r")

            print(f"{description}: {total} files...")
            yield advance
            print(f"{description}: {completed}/{total} files")
        else:
            yield lambda: None

    async def concatenate(
        self, paths: Sequence[Path], progress: bool = True
    ) -> ConcatenationResult:
        """Decode every path and join the texts in list order.

        Reading and decoding runs on a thread pool; results are awaited in
        list order, so completion order never changes the output. Unreadable
        files are skipped and reported.

        Raises:
            NoInputFilesError: ``paths`` is empty
            AllFilesFailedError: no file could be read
        """
        if not paths:
            raise NoInputFilesError()

        self.stats = {"files_processed": 0, "files_skipped": 0, "bytes_processed": 0}
        parts: List[str] = []
        files: List[FileMetadata] = []
        skipped: List[SkippedFile] = []

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            pending = [
                loop.run_in_executor(executor, self._process_file, path)
                for path in paths
            ]
            with self._progress(len(paths), "Decoding", progress) as advance:
                for path, future in zip(paths, pending):
                    try:
                        decoded = await future
                    except ReadError as e:
                        self.logger.warning(f"Skipping {path}: {e.reason}")
                        skipped.append(SkippedFile(path, e.reason))
                        self.stats["files_skipped"] += 1
                    else:
                        metadata = decoded.metadata
                        self.logger.debug(
                            f"{metadata.path}: {metadata.encoding} "
                            f"({metadata.method}, {self._format_size(metadata.size)})"
                        )
                        parts.append(decoded.content)
                        files.append(metadata)
                        self.stats["files_processed"] += 1
                        self.stats["bytes_processed"] += metadata.size
                    advance()

        if not files:
            raise AllFilesFailedError(skipped)

        return ConcatenationResult(
            text=self.separator.join(parts), files=files, skipped=skipped
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _write_atomic(self, output_path: Path, payload: bytes) -> None:
        """Write through a temporary file in the target directory, then rename"""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        temp_file = tempfile.NamedTemporaryFile(
            mode="wb", suffix=".tmp", dir=output_path.parent, delete=False
        )
        self._temp_files.append(temp_file.name)
        try:
            with temp_file:
                temp_file.write(payload)
            # Temporary files are created 0600; give the output the usual umask mode
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(temp_file.name, 0o666 & ~umask)
            os.replace(temp_file.name, output_path)
            self._temp_files.remove(temp_file.name)
        finally:
            self._cleanup_temp_files()

    async def write_output(
        self, result: ConcatenationResult, output_path: Union[str, Path]
    ) -> Path:
        """Encode the concatenated text and write it to ``output_path``

        Raises:
            WriteError: the output cannot be created or written
        """
        output_path = Path(output_path)
        payload = result.text.encode(self.output_encoding, errors="replace")
        try:
            await run_in_thread(self._write_atomic, output_path, payload)
        except OSError as e:
            raise WriteError(output_path, e.strerror or str(e)) from e
        return output_path

    async def concatenate_files(
        self,
        inputs: Sequence[str],
        output_path: Union[str, Path],
        recursive: Optional[bool] = None,
        progress: bool = True,
    ) -> ConcatenationResult:
        """Resolve inputs, concatenate them and write the output file.

        The output file itself is never read as an input. Nothing is written
        unless at least one file was decoded.
        """
        start_time = time.time()
        output_path = Path(output_path)

        paths = self.resolve_inputs(inputs, recursive, exclude=[output_path])
        self.logger.info(f"Concatenating {len(paths)} files")

        result = await self.concatenate(paths, progress=progress)
        await self.write_output(result, output_path)

        elapsed = time.time() - start_time
        self.logger.info(
            f"Wrote {self._format_size(self.stats['bytes_processed'])} "
            f"from {self.stats['files_processed']} files "
            f"(skipped: {self.stats['files_skipped']}) in {elapsed:.2f}s"
        )
        return result

    def dry_run(
        self,
        inputs: Sequence[str],
        output_path: Optional[Union[str, Path]] = None,
        recursive: Optional[bool] = None,
    ) -> ConcatenationResult:
        """Print resolved files with their detected encodings without writing"""
        exclude = [output_path] if output_path else []
        paths = self.resolve_inputs(inputs, recursive, exclude=exclude)

        files: List[FileMetadata] = []
        skipped: List[SkippedFile] = []
        total_size = 0

        self._echo("DRY RUN - Files that would be concatenated:")
        for path in paths:
            shown = markup_escape(str(path)) if markup_escape else str(path)
            try:
                metadata = self._process_file(path).metadata
            except ReadError as e:
                skipped.append(SkippedFile(path, e.reason))
                self._echo(f"  [red]✗[/red] {shown} ({e.reason})", f"  ✗ {path} ({e.reason})")
                continue
            files.append(metadata)
            total_size += metadata.size
            self._echo(
                f"  [green]✓[/green] {shown} ([blue]{self._format_size(metadata.size)}[/blue], "
                f"[yellow]{metadata.encoding}[/yellow])",
                f"  ✓ {path} ({self._format_size(metadata.size)}, {metadata.encoding})",
            )

        self._echo(
            f"\nWould concatenate [green]{len(files)}[/green] files "
            f"([blue]{self._format_size(total_size)}[/blue]), "
            f"skip [yellow]{len(skipped)}[/yellow]",
            f"\nWould concatenate {len(files)} files "
            f"({self._format_size(total_size)}), skip {len(skipped)}",
        )
        return ConcatenationResult(text="", files=files, skipped=skipped)

    def _echo(self, markup: str, plain: Optional[str] = None) -> None:
        if HAS_RICH and self.console:
            self.console.print(markup, highlight=False)
        else:
            print(plain if plain is not None else markup)

    def _cleanup_temp_files(self):
        """Clean up any temporary files"""
        for temp_item in self._temp_files[:]:
            try:
                temp_path = Path(temp_item)
                if temp_path.exists():
                    temp_path.unlink()
                self._temp_files.remove(temp_item)
            except OSError:
                pass

    def __del__(self):
        """Destructor to ensure cleanup"""
        if hasattr(self, "_temp_files"):
            self._cleanup_temp_files()


def create_config_file(config_path: Path) -> bool:
    """Create a default configuration file"""
    default_config = """# Concatener Configuration
# Uncomment and modify values as needed

# Descend into subdirectories and match patterns at any depth
# recursive = false

# Text inserted between files (escapes such as \\n are interpreted)
# separator = ""

# Encoding of the output file
# output_encoding = "utf-8"

# Consult statistical detection before the fixed-order legacy probes
# use_statistics = true

# Minimum confidence (0-1) for a statistical match
# min_confidence = 0.6

# Sort directory entries by name instead of raw listing order
# sort_entries = true

# Maximum number of worker threads
# max_workers = 8

# Maximum directory depth to traverse
# max_depth = 50

# verbose = false
"""

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(default_config)
        return True
    except OSError as e:
        print(f"Error creating config file: {e}", file=sys.stderr)
        return False


def _parse_config_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    if re.match(r"^\d*\.\d+$", value):
        return float(value)
    if value.startswith("[") and value.endswith("]"):
        items = [item.strip().strip("\"'") for item in value[1:-1].split(",")]
        return [item for item in items if item]
    return value


def load_config_file(config_path: Path) -> Dict:
    """Load ``key = value`` configuration, ignoring comments and blank lines"""
    if not config_path.exists():
        return {}

    config = {}
    line_num = 0
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    raw = value.strip()
                    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
                        # Quoted values stay strings
                        config[key] = raw[1:-1]
                    else:
                        config[key] = _parse_config_value(raw)

    except (OSError, UnicodeDecodeError) as e:
        print(
            f"Warning: Error loading config file on line {line_num}: {e}",
            file=sys.stderr,
        )

    return config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="concatener",
        description="Concatenate files, directories and patterns into one file "
        "with automatic encoding detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Concatenate files in command-line order
  %(prog)s -o all.txt intro.txt chapter1.txt chapter2.txt

  # Every file directly inside a directory
  %(prog)s -o notes.txt ./notes

  # Every .md file under docs/, at any depth
  %(prog)s -r -o docs.md "docs/*.md"

  # Put a blank line between files and write Windows-1252 output
  %(prog)s -s '\\n\\n' -E cp1252 -o merged.txt a.txt b.txt

  # Show what would be concatenated and the detected encodings
  %(prog)s -n -o all.txt "*.txt"
        """,
    )

    parser.add_argument(
        "inputs",
        nargs="*",
        metavar="INPUT",
        help="Input files, directories, or wildcard patterns, in output order",
    )
    parser.add_argument("-o", "--output", help="Output file path")
    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        default=None,
        help="Recursively search directories; patterns match at any depth",
    )
    parser.add_argument(
        "-s",
        "--separator",
        default=None,
        help="Text inserted between files (escapes such as \\n are interpreted)",
    )
    parser.add_argument(
        "-E", "--output-encoding", default=None, help="Output encoding (default: utf-8)"
    )
    parser.add_argument(
        "-n", "--dry-run", action="store_true", help="Show what would be done"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=None, help="Verbose output"
    )
    parser.add_argument("-j", "--jobs", type=int, default=None, help="Worker threads")
    parser.add_argument(
        "--max-depth", type=int, default=None, help="Maximum directory depth"
    )
    parser.add_argument(
        "--no-statistics",
        action="store_true",
        help="Only use the fixed-order structural probes for legacy encodings",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Minimum confidence (0-1) for statistical detection",
    )
    parser.add_argument(
        "--no-sort",
        action="store_true",
        help="Keep raw directory listing order instead of sorting by name",
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable progress bars"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path.home() / ".config" / "concatener" / "config",
        help="Configuration file path",
    )
    parser.add_argument(
        "--create-config", action="store_true", help="Create default config"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point with comprehensive error handling"""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.create_config:
        if create_config_file(args.config):
            print(f"Created default configuration file: {args.config}")
            return 0
        return 1

    if not args.output:
        parser.error("the following arguments are required: -o/--output")
    if not args.inputs:
        parser.error("the following arguments are required: INPUT")

    try:
        config = load_config_file(args.config)

        # Command line flags override the configuration file
        overrides = {
            "recursive": args.recursive,
            "separator": args.separator,
            "output_encoding": args.output_encoding,
            "verbose": args.verbose,
            "max_workers": args.jobs,
            "max_depth": args.max_depth,
            "min_confidence": args.min_confidence,
            "use_statistics": False if args.no_statistics else None,
            "sort_entries": False if args.no_sort else None,
        }
        config.update({key: value for key, value in overrides.items() if value is not None})
        if "separator" in config:
            config["separator"] = unescape_separator(str(config["separator"]))

        concatener = Concatener(config)

        if args.dry_run:
            concatener.dry_run(args.inputs, args.output)
            return 0

        result = await concatener.concatenate_files(
            args.inputs, args.output, progress=not args.no_progress
        )

        for skipped in result.skipped:
            print(f"  ✗ skipped {skipped.path} ({skipped.reason})", file=sys.stderr)
        print(
            f"Successfully concatenated {len(result.files)} files to: {args.output}"
        )
        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except ConcatenerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


def cli_main():
    """Synchronous entry point for console scripts"""
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(cli_main())
