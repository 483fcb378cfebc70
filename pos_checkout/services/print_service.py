"""
Print dispatch.

Printing happens after the sale is stored, so a failure here is reported as a
warning and never touches the sale.
"""
import logging
import os
import webbrowser
from dataclasses import dataclass
from typing import Callable, Optional

from pos_checkout.services.receipt_service import MEDIA_TYPE_PDF, ReceiptDocument, render_receipt
from pos_checkout.services.sale_snapshot import FinalizedSale
from pos_checkout.services.settings_service import StoreSettings

logger = logging.getLogger(__name__)


class SurfaceUnavailable(Exception):
    """The presentation surface could not be obtained or refused the document."""


@dataclass(frozen=True)
class PrintResult:
    ok: bool
    warning: Optional[str] = None
    location: Optional[str] = None

    def to_dict(self):
        return {'ok': self.ok, 'warning': self.warning, 'location': self.location}


class SpoolSurface:
    """
    Writes receipts to a spool directory for the counter printer.

    With open_browser=True the file is also opened in the default browser so
    the cashier gets the print dialog.
    """

    def __init__(self, directory: str, open_browser: bool = False):
        self.directory = directory
        self.open_browser = open_browser

    def present(self, document: ReceiptDocument, name: str) -> str:
        os.makedirs(self.directory, exist_ok=True)
        extension = 'pdf' if document.media_type == MEDIA_TYPE_PDF else 'html'
        path = os.path.join(self.directory, f"{name}.{extension}")
        mode = 'wb' if isinstance(document.content, bytes) else 'w'
        encoding = None if mode == 'wb' else 'utf-8'
        with open(path, mode, encoding=encoding) as fh:
            fh.write(document.content)
        if self.open_browser and not webbrowser.open(f"file://{os.path.abspath(path)}"):
            raise SurfaceUnavailable('No browser available to show the receipt')
        return path


class PrintDispatcher:
    """Hands rendered receipts to a surface obtained from the injected factory."""

    def __init__(self, surface_factory: Callable[[], object]):
        self.surface_factory = surface_factory

    def dispatch(self, document: ReceiptDocument, name: str = 'receipt') -> PrintResult:
        try:
            surface = self.surface_factory()
            if surface is None:
                raise SurfaceUnavailable('No print surface available')
            location = surface.present(document, name)
        except (SurfaceUnavailable, OSError) as e:
            logger.warning(f"[PRINT] Receipt {name} not printed: {e}")
            return PrintResult(ok=False, warning=f"Sale saved, but the receipt could not be printed: {e}")
        logger.info(f"[PRINT] Receipt {name} sent to {location}")
        return PrintResult(ok=True, location=location)


def spool_dispatcher(directory: str, open_browser: bool = False) -> PrintDispatcher:
    return PrintDispatcher(lambda: SpoolSurface(directory, open_browser))


def print_sale(sale: FinalizedSale, settings: StoreSettings, dispatcher: PrintDispatcher,
               template: Optional[str] = None) -> PrintResult:
    """Render first, then dispatch."""
    document = render_receipt(sale, settings, template)
    return dispatcher.dispatch(document, name=f"invoice-{sale.invoice_number(settings.invoice_prefix)}")
