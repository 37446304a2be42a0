"""Map supplier catalog codes to local product identifiers."""

from dataclasses import dataclass, field

from stocksync.exceptions import SkuLookupError
from stocksync.models import RemoteCatalogEntry
from stocksync.repositories.base import LedgerRepository


@dataclass
class ResolutionResult:
    """Catalog entries keyed by local product id, plus miss counters."""

    entries: dict[int, RemoteCatalogEntry] = field(default_factory=dict)
    matched_count: int = 0
    empty_code_count: int = 0
    unmatched_count: int = 0


def build_index(repository: LedgerRepository) -> dict[str, int]:
    """Load the SKU -> product id index from the ledger."""
    try:
        index = repository.sku_index()
    except SkuLookupError:
        raise
    except Exception as exc:
        raise SkuLookupError(f"Error querying SKUs: {exc}") from exc

    return {sku.strip(): pid for sku, pid in index.items() if sku and sku.strip()}


def resolve(
    entries: list[RemoteCatalogEntry], index: dict[str, int]
) -> ResolutionResult:
    """Match entries by trimmed code; later duplicates replace earlier ones."""
    result = ResolutionResult()
    for entry in entries:
        code = entry.code.strip()
        if not code:
            result.empty_code_count += 1
            continue

        product_id = index.get(code)
        if product_id is None:
            result.unmatched_count += 1
            continue

        result.entries[product_id] = entry
        result.matched_count += 1
    return result
