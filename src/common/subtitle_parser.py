"""SRT subtitle parser and formatter for translation workflows."""

import logging
import re
from dataclasses import dataclass
from typing import List, Sequence

from common.schemas import SubtitleLine

logger = logging.getLogger(__name__)

TIMESTAMP_SEPARATOR = " --> "


@dataclass
class SubtitleSegment:
    """Represents a single subtitle segment with timing and text."""

    index: int
    start_time: str
    end_time: str
    text: str

    def __str__(self) -> str:
        """Format segment as SRT entry."""
        return f"{self.index}\n{self.start_time} --> {self.end_time}\n{self.text}\n"


class SRTParser:
    """Parser for SRT subtitle files."""

    # SRT timestamp format: HH:MM:SS,mmm (some files use '.' before millis)
    TIMESTAMP_PATTERN = re.compile(
        r"(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})"
    )

    @staticmethod
    def parse(content: str) -> List[SubtitleSegment]:
        """
        Parse SRT content into subtitle segments.

        Args:
            content: Raw SRT file content

        Returns:
            List of SubtitleSegment objects
        """
        # Remove BOM (Byte Order Mark) if present (common in UTF-8 files)
        if content.startswith("\ufeff"):
            content = content[1:]

        content = content.replace("\r\n", "\n").replace("\r", "\n")

        segments = []
        lines = content.strip().split("\n")

        i = 0
        while i < len(lines):
            if not lines[i].strip():
                i += 1
                continue

            try:
                index = int(lines[i].strip())
                i += 1

                if i >= len(lines):
                    break

                timestamp_match = SRTParser.TIMESTAMP_PATTERN.search(lines[i])
                if not timestamp_match:
                    logger.warning(f"Invalid timestamp format at line {i}: {lines[i]}")
                    i += 1
                    continue

                groups = timestamp_match.groups()
                start_time = (
                    f"{int(groups[0]):02d}:{groups[1]}:{groups[2]},{groups[3]}"
                )
                end_time = f"{int(groups[4]):02d}:{groups[5]}:{groups[6]},{groups[7]}"
                i += 1

                # Parse text (may be multiple lines)
                text_lines = []
                while i < len(lines) and lines[i].strip():
                    text_lines.append(lines[i].strip())
                    i += 1

                segments.append(
                    SubtitleSegment(
                        index=index,
                        start_time=start_time,
                        end_time=end_time,
                        text="\n".join(text_lines),
                    )
                )

            except (ValueError, IndexError) as e:
                logger.error(f"Error parsing segment at line {i}: {e}")
                i += 1
                continue

        logger.info(f"Parsed {len(segments)} subtitle segments")
        return segments

    @staticmethod
    def format(segments: Sequence[SubtitleSegment]) -> str:
        """
        Format subtitle segments back to SRT format with proper spacing.

        Ensures:
        - One blank line between subtitle entries
        - No trailing blank lines at end of file

        Args:
            segments: List of SubtitleSegment objects

        Returns:
            Formatted SRT content string
        """
        if not segments:
            return ""

        formatted = "\n\n".join(str(segment).rstrip() for segment in segments)

        return formatted + "\n"


def segments_to_lines(segments: Sequence[SubtitleSegment]) -> List[SubtitleLine]:
    """
    Convert parsed segments into editable lines with empty translations.

    Lines are renumbered 1..N in file order, whatever indices the file used.

    Args:
        segments: Parsed SRT segments

    Returns:
        List of SubtitleLine objects
    """
    return [
        SubtitleLine(
            index=position,
            timestamp=f"{segment.start_time}{TIMESTAMP_SEPARATOR}{segment.end_time}",
            source_text=segment.text,
            translated_text="",
        )
        for position, segment in enumerate(segments, 1)
    ]


def lines_to_segments(lines: Sequence[SubtitleLine]) -> List[SubtitleSegment]:
    """
    Convert lines back to segments for export.

    Each segment carries the translated text, falling back to the source
    text when a line was never translated.

    Args:
        lines: Subtitle lines

    Returns:
        List of SubtitleSegment objects
    """
    segments = []
    for line in lines:
        start_time, _, end_time = line.timestamp.partition(TIMESTAMP_SEPARATOR.strip())
        segments.append(
            SubtitleSegment(
                index=line.index,
                start_time=start_time.strip(),
                end_time=end_time.strip(),
                text=line.translated_text or line.source_text,
            )
        )
    return segments


def extract_text_for_translation(
    lines: Sequence[SubtitleLine], start_line: int, end_line: int
) -> List[str]:
    """
    Extract the source text of lines [start_line, end_line).

    Args:
        lines: All lines of the job
        start_line: First offset (inclusive)
        end_line: Last offset (exclusive)

    Returns:
        List of text strings to translate
    """
    return [line.source_text for line in lines[start_line:end_line]]


def merge_batch_translations(
    lines: List[SubtitleLine], start_line: int, translations: Sequence[str]
) -> List[SubtitleLine]:
    """
    Write translated strings into the lines of one batch.

    Translations past the end of the line array are ignored.

    Args:
        lines: All lines of the job (modified in place)
        start_line: Offset of the first line of the batch
        translations: Translated strings in batch order

    Returns:
        The same list of lines
    """
    for offset, translated_text in enumerate(translations):
        position = start_line + offset
        if position >= len(lines):
            break
        lines[position].translated_text = translated_text
    return lines
