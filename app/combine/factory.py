from app.combine.base import BaseCombiner
from app.combine.exceptions import CombineError
from app.combine.img2pdf_combiner import Img2PdfCombiner
from app.combine.pymupdf_combiner import PyMuPdfCombiner
from app.config.settings import Settings
from app.shell.runner import CommandRunner


class CombinerFactory:
    """Creates the combiner matching the configured output format."""

    SUPPORTED_FORMATS = ("pdf", "tiff")

    @classmethod
    def create(cls, settings: Settings, runner: CommandRunner) -> BaseCombiner:
        output_format = settings.output_format.lower()
        if output_format == "pdf":
            return PyMuPdfCombiner(settings.scan_output_dir)
        if output_format == "tiff":
            return Img2PdfCombiner(
                settings.scan_output_dir, runner, img2pdf_binary=settings.img2pdf_binary
            )
        raise CombineError(
            f"Combining is not supported for {output_format.upper()} format. "
            f"Choose from: {list(cls.SUPPORTED_FORMATS)}"
        )
