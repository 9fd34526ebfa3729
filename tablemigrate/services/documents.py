"""Document conversion: images to PDF, placeholder pages, and PDF merging."""

import io
import logging
import os
import shutil
from typing import List

from PIL import Image, ImageDraw, ImageFont
from pypdf import PdfWriter

logger = logging.getLogger(__name__)

# US Letter in points; pages are rendered at 72 dpi so one pixel is one point
PLACEHOLDER_PAGE_SIZE = (612, 792)
PDF_RESOLUTION = 72.0


def image_to_pdf(image_path: str, output_path: str, quality: int = 90) -> str:
    """
    Re-encode an image as JPEG and embed it as a single PDF page sized to the image.

    Args:
        image_path: Source image file
        output_path: PDF file to write
        quality: JPEG quality (1-95)

    Returns:
        The output path
    """
    with Image.open(image_path) as image:
        image.seek(0)
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, "white")
            flattened.paste(rgba, mask=rgba.split()[-1])
        else:
            flattened = image.convert("RGB")

    buffer = io.BytesIO()
    flattened.save(buffer, format="JPEG", quality=quality)
    buffer.seek(0)

    with Image.open(buffer) as jpeg:
        jpeg.save(output_path, format="PDF", resolution=PDF_RESOLUTION)

    logger.debug(f"Converted image to PDF: {output_path}")
    return output_path


def create_placeholder_pdf(original_name: str, output_path: str) -> str:
    """
    Write a one-page PDF stating that a file could not be converted.

    Args:
        original_name: File name shown on the page
        output_path: PDF file to write

    Returns:
        The output path
    """
    extension = os.path.splitext(original_name)[1].upper()
    lines = [
        f"Original file: {original_name}",
        f"File type: {extension}",
        "This file type could not be converted to PDF automatically.",
    ]

    page = Image.new("RGB", PLACEHOLDER_PAGE_SIZE, "white")
    draw = ImageDraw.Draw(page)
    font = ImageFont.load_default()
    for i, line in enumerate(lines):
        draw.text((50, 100 + i * 30), line, fill="black", font=font)

    page.save(output_path, format="PDF", resolution=PDF_RESOLUTION)
    logger.debug(f"Created placeholder PDF: {output_path}")
    return output_path


def merge_pdfs(pdf_paths: List[str], output_path: str) -> str:
    """
    Concatenate PDFs page by page in the given order.

    A single input is copied as is.

    Raises:
        ValueError: If no inputs are given
    """
    if not pdf_paths:
        raise ValueError("No PDF files to merge")

    if len(pdf_paths) == 1:
        shutil.copyfile(pdf_paths[0], output_path)
        return output_path

    writer = PdfWriter()
    try:
        for path in pdf_paths:
            writer.append(path)
        with open(output_path, "wb") as f:
            writer.write(f)
    finally:
        writer.close()

    logger.debug(f"Merged {len(pdf_paths)} PDFs into {output_path}")
    return output_path
