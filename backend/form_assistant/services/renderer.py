"""
Renderer adapter: draws a filled form onto A4 pages and saves it as a PDF.
"""
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Protocol, Tuple

from PIL import Image, ImageDraw, ImageFont

from form_assistant.config import Config
from form_assistant.errors import CollaboratorIOFailure
from form_assistant.services.form_structure.form_model import FormModel

logger = logging.getLogger(__name__)

# A4 at 150 DPI
PAGE_SIZE = (1240, 1754)
MARGIN = 100
LINE_SPACING = 12


@dataclass(frozen=True)
class RenderedDocument:
    """A generated document on disk."""
    path: Path
    filename: str
    file_size: int


class Renderer(Protocol):
    """Structural type for rendering collaborators."""

    output_dir: Path

    def render(self, form: FormModel, values: Mapping[str, str]) -> RenderedDocument:
        ...


class PdfFormRenderer:
    """Service for rendering collected values into a PDF document."""

    def __init__(self, output_dir: Optional[str] = None, font_path: Optional[str] = None):
        """
        Initialize the renderer.

        Args:
            output_dir: Directory for generated files (Config.OUTPUT_DIR if None)
            font_path: TrueType font to draw with (Config.FONT_PATH if None)
        """
        self.output_dir = Path(output_dir or Config.OUTPUT_DIR)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.font_path = font_path or Config.FONT_PATH
        self.title_font = self._load_font(36)
        self.heading_font = self._load_font(28)
        self.body_font = self._load_font(22)
        logger.info(f"PDF renderer initialized. Output directory: {self.output_dir}")

    def _load_font(self, size: int):
        if self.font_path:
            try:
                return ImageFont.truetype(self.font_path, size)
            except OSError as e:
                logger.warning(f"Could not load font {self.font_path}: {e}. Using default font.")
        try:
            return ImageFont.load_default(size=size)
        except TypeError:
            # Pillow < 10.1 has no sized default font
            return ImageFont.load_default()

    def render(self, form: FormModel, values: Mapping[str, str]) -> RenderedDocument:
        """
        Render a filled form to PDF.

        Args:
            form: The form that was filled
            values: Field id -> value (ids must belong to the form)

        Returns:
            RenderedDocument describing the written file

        Raises:
            CollaboratorIOFailure: The document could not be written
        """
        lines = self._layout_lines(form, values)
        pages = self._draw_pages(lines)

        filename = f"{form.form_id or 'form'}_{uuid.uuid4().hex}.pdf"
        path = self.output_dir / filename
        try:
            first, rest = pages[0], pages[1:]
            first.save(path, format='PDF', save_all=True, append_images=rest, resolution=150.0)
            file_size = path.stat().st_size
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write rendered form {path}: {e}")
            raise CollaboratorIOFailure('renderer', str(e)) from e

        logger.info(f"Rendered form {form.form_id} to {path} ({file_size} bytes, {len(pages)} pages)")
        return RenderedDocument(path=path, filename=filename, file_size=file_size)

    def _layout_lines(self, form: FormModel, values: Mapping[str, str]) -> List[Tuple[str, object]]:
        """Flatten the form into (text, font) lines in presentation order."""
        lines: List[Tuple[str, object]] = [(form.title, self.title_font), ("", self.body_font)]

        sectioned = set()
        for section in form.sections:
            lines.append((section.title, self.heading_font))
            for field_id in section.field_ids:
                sectioned.add(field_id)
                lines.extend(self._field_lines(form, field_id, values))
            lines.append(("", self.body_font))

        loose = [f.id for f in form.fields if f.id not in sectioned]
        if loose:
            if form.sections:
                lines.append(("Other Details", self.heading_font))
            for field_id in loose:
                lines.extend(self._field_lines(form, field_id, values))
        return lines

    def _field_lines(self, form: FormModel, field_id: str, values: Mapping[str, str]) -> List[Tuple[str, object]]:
        form_field = form.get_field(field_id)
        value = values.get(field_id, "")
        text = f"{form_field.label}: {value if value else '-'}"
        return [(line, self.body_font) for line in self._wrap(text, self.body_font)]

    def _wrap(self, text: str, font) -> List[str]:
        """Greedy word wrap to the printable width."""
        max_width = PAGE_SIZE[0] - 2 * MARGIN
        measure = ImageDraw.Draw(Image.new('RGB', (1, 1)))
        wrapped, current = [], ""
        for word in text.split():
            candidate = f"{current} {word}".strip()
            if measure.textlength(candidate, font=font) <= max_width or not current:
                current = candidate
            else:
                wrapped.append(current)
                current = word
        wrapped.append(current)
        return wrapped

    def _draw_pages(self, lines: List[Tuple[str, object]]) -> List[Image.Image]:
        pages = []
        page, draw, y = self._new_page()
        for text, font in lines:
            top, bottom = draw.textbbox((0, 0), text or " ", font=font)[1::2]
            height = bottom - top + LINE_SPACING
            if y + height > PAGE_SIZE[1] - MARGIN:
                pages.append(page)
                page, draw, y = self._new_page()
            if text:
                draw.text((MARGIN, y), text, fill='black', font=font)
            y += height
        pages.append(page)
        return pages

    @staticmethod
    def _new_page():
        page = Image.new('RGB', PAGE_SIZE, 'white')
        return page, ImageDraw.Draw(page), MARGIN
