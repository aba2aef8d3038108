import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import PIL
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy.orm import sessionmaker

from country_gdp import crud
from country_gdp.config import Settings
from country_gdp.exceptions import RenderFailure

logger = logging.getLogger("country_gdp.image")

W, H = 800, 480
FG = (34, 34, 34)
MUTED = (90, 90, 90)
GRID = (225, 230, 240)
HEADER_BG = (245, 247, 250)
ACCENT = (60, 99, 243)


def _resolve_font_path(font_filename: str) -> Path | None:
    base = Path(PIL.__file__).parent
    for p in (base / font_filename, base / "fonts" / font_filename, base.parent / font_filename):
        if p.exists():
            return p
    return None


def _load_font(name: str, size: int):
    p = _resolve_font_path(name)
    if p is not None:
        try:
            return ImageFont.truetype(str(p), size)
        except OSError:
            logger.debug("Could not load font %s; using default", p)
    return ImageFont.load_default()


def _right_text(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, fill=FG, font=None):
    bbox = draw.textbbox((0, 0), text, font=font)
    draw.text((x_right - (bbox[2] - bbox[0]), y), text, fill=fill, font=font)


def format_gdp(val) -> str:
    """Compact USD string, e.g. $1.2T, $350.5B, $12K."""
    if val is None:
        return "-"
    n = float(val)
    for div, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(n) >= div:
            s = f"{n / div:.1f}".rstrip("0").rstrip(".")
            return f"${s}{suffix}"
    return f"${n:,.0f}"


def format_timestamp(ts: Optional[datetime]) -> str:
    if ts is None:
        return "(unknown)"
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def generate_summary_image(top_countries: Sequence, total: int, timestamp: Optional[datetime], output_path: Path) -> Path:
    """Draw the summary table of the top GDP countries and write it to output_path.

    Columns: Rank | Country | Estimated GDP
    Header: total countries and last refresh timestamp.
    The file is written next to its final location and moved into place, so
    readers never see a half-written image.
    """
    rows = [c for c in top_countries if getattr(c, "estimated_gdp", None) is not None]
    try:
        img = Image.new("RGB", (W, H), color=(255, 255, 255))
        draw = ImageDraw.Draw(img)

        font_title = _load_font("DejaVuSans-Bold.ttf", 20)
        font_meta = _load_font("DejaVuSans.ttf", 16)
        font_header = _load_font("DejaVuSans-Bold.ttf", 16)
        font_cell = _load_font("DejaVuSans.ttf", 16)

        margin = 24
        y = margin
        draw.text((margin, y), "Country Currency & Exchange Summary", fill=ACCENT, font=font_title)
        y += 30
        draw.text(
            (margin, y),
            f"Total Countries: {total}  |  Last Refresh: {format_timestamp(timestamp)}",
            fill=MUTED,
            font=font_meta,
        )
        y += 24

        table_top = y + 10
        table_left = margin
        table_right = W - margin
        row_h = 38
        header_h = 40

        col_rank_w = 70
        col_country_w = int((table_right - table_left - col_rank_w) * 0.6)
        col_gdp_w = (table_right - table_left) - col_rank_w - col_country_w
        x_rank = table_left
        x_country = x_rank + col_rank_w
        x_gdp = x_country + col_country_w

        draw.rectangle([table_left, table_top, table_right, table_top + header_h], fill=HEADER_BG)
        draw.text((x_rank + 12, table_top + 11), "#", fill=FG, font=font_header)
        draw.text((x_country + 12, table_top + 11), "Country", fill=FG, font=font_header)
        _right_text(draw, x_gdp + col_gdp_w - 12, table_top + 11, "Estimated GDP (USD)", font=font_header)
        draw.line([table_left, table_top + header_h, table_right, table_top + header_h], fill=GRID, width=1)

        y_row = table_top + header_h
        max_rows = 5
        for i in range(max_rows):
            if i % 2 == 0:
                draw.rectangle([table_left, y_row, table_right, y_row + row_h], fill=(252, 253, 255))
            if i < len(rows):
                c = rows[i]
                draw.text((x_rank + 12, y_row + 10), str(i + 1), fill=FG, font=font_cell)
                draw.text((x_country + 12, y_row + 10), c.name or "-", fill=FG, font=font_cell)
                _right_text(draw, x_gdp + col_gdp_w - 12, y_row + 10, format_gdp(c.estimated_gdp), font=font_cell)
            elif i == 0:
                draw.text((x_country + 12, y_row + 10), "No GDP data available", fill=MUTED, font=font_cell)
            draw.line([table_left, y_row + row_h, table_right, y_row + row_h], fill=GRID, width=1)
            y_row += row_h

        draw.rectangle([table_left, table_top, table_right, y_row], outline=GRID, width=1)
        draw.text(
            (margin, y_row + 16),
            "Data sources: Rest Countries API, Exchange Rates API (base USD)",
            fill=(110, 110, 110),
            font=font_meta,
        )

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = output_path.with_name(output_path.name + ".tmp")
        img.save(str(tmp_path), format="PNG")
        os.replace(tmp_path, output_path)
    except (OSError, ValueError) as exc:
        raise RenderFailure(f"Could not write summary image to {output_path}: {exc}") from exc

    logger.info("Summary image written to %s (%d rows)", output_path, len(rows))
    return output_path


def render_summary_from_store(session_factory: sessionmaker, config: Settings) -> Path:
    """Read the current top countries and metadata and redraw the summary image.

    Safe to call again after a failed render.
    """
    with session_factory() as db:
        top = crud.top_by_gdp(db, config.SUMMARY_TOP_N)
        meta = crud.RefreshMetadataStore(db).get()
    return generate_summary_image(top, meta.total_countries, meta.last_refreshed_at, config.summary_image_path)
