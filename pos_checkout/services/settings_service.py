"""
Store settings collaborator.

Settings are read-only here. The stored row overrides config defaults field by
field, and the merged result may be cached, so a reprint always reflects the
current settings rather than those in force at the time of the sale.
"""
import logging
from dataclasses import dataclass, fields, asdict, replace
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from pos_checkout.models import StoreSettingsRecord
from pos_checkout.utils.formatters import DEFAULT_CURRENCY_SYMBOL, GROUPING_INDIAN, GROUPING_WESTERN

logger = logging.getLogger(__name__)

TEMPLATE_COMPACT = 'compact'
TEMPLATE_BRANDED = 'branded'
TEMPLATE_DETAILED = 'detailed'
RECEIPT_TEMPLATES = (TEMPLATE_COMPACT, TEMPLATE_BRANDED, TEMPLATE_DETAILED)

CACHE_MODULE = 'settings'
CACHE_KEY = 'store'

# Config key for each settings field
CONFIG_KEYS = {
    'receipt_template': 'RECEIPT_TEMPLATE',
    'store_name': 'STORE_NAME',
    'address': 'STORE_ADDRESS',
    'contact_line': 'STORE_CONTACT',
    'tax_identifier': 'STORE_TAX_ID',
    'logo_reference': 'STORE_LOGO_URL',
    'footer_note': 'RECEIPT_FOOTER_NOTE',
    'invoice_prefix': 'INVOICE_PREFIX',
    'currency_symbol': 'CURRENCY_SYMBOL',
    'currency_grouping': 'CURRENCY_GROUPING',
}


def normalize_template(name: Any) -> str:
    """Known template name, or compact for anything else."""
    value = str(name or '').strip().lower()
    if value in RECEIPT_TEMPLATES:
        return value
    if value:
        logger.warning(f"[SETTINGS] Unknown receipt template '{name}', using {TEMPLATE_COMPACT}")
    return TEMPLATE_COMPACT


@dataclass(frozen=True)
class StoreSettings:
    """Store identity and receipt preferences consumed by the renderer."""
    receipt_template: str = TEMPLATE_COMPACT
    store_name: str = ''
    address: str = ''
    contact_line: str = ''
    tax_identifier: str = ''
    logo_reference: Optional[str] = None
    footer_note: Optional[str] = None
    invoice_prefix: str = ''
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    currency_grouping: str = GROUPING_INDIAN

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'StoreSettings':
        """Build from a mapping, ignoring unknown keys and empty values."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v not in (None, '')}
        settings = cls(**values)
        grouping = settings.currency_grouping if settings.currency_grouping in (GROUPING_INDIAN, GROUPING_WESTERN) \
            else GROUPING_INDIAN
        return replace(
            settings,
            receipt_template=normalize_template(settings.receipt_template),
            currency_grouping=grouping,
        )

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> 'StoreSettings':
        """Copy with non-empty overrides applied."""
        data = asdict(self)
        for key, value in (overrides or {}).items():
            if key in data and value not in (None, ''):
                data[key] = value
        return StoreSettings.from_mapping(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def defaults_from_config(config: Mapping[str, Any]) -> StoreSettings:
    return StoreSettings.from_mapping({
        field: config.get(key) for field, key in CONFIG_KEYS.items()
    })


def _record_to_dict(record: Optional[StoreSettingsRecord]) -> Dict[str, Any]:
    if record is None:
        return {}
    return {
        'receipt_template': record.receipt_template,
        'store_name': record.store_name,
        'address': record.address,
        'contact_line': record.contact_line,
        'tax_identifier': record.tax_identifier,
        'logo_reference': record.logo_reference,
        'footer_note': record.footer_note,
        'invoice_prefix': record.invoice_prefix,
    }


class StoreSettingsProvider:
    """
    Reads store settings: cache, then database row, then config defaults.

    A database failure is logged and answered with the defaults; receipts
    must still print when settings cannot be fetched.
    """

    def __init__(self, session, defaults: StoreSettings, cache=None):
        self.session = session
        self.defaults = defaults
        self.cache = cache

    def _load_overrides(self) -> Dict[str, Any]:
        record = self.session.query(StoreSettingsRecord).order_by(StoreSettingsRecord.id).first()
        return _record_to_dict(record)

    def get(self) -> StoreSettings:
        try:
            if self.cache is not None:
                overrides = self.cache.memoize(CACHE_MODULE, CACHE_KEY, self._load_overrides)
            else:
                overrides = self._load_overrides()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"[SETTINGS] Could not read store settings, using defaults: {e}")
            return self.defaults
        return self.defaults.merged(overrides)

    def invalidate(self) -> None:
        if self.cache is not None:
            self.cache.delete(CACHE_MODULE, CACHE_KEY)
