"""
Import reconciliation pipeline: normalize, match, merge, reconcile, batch.
"""

from .batch import (
    DEFAULT_CHUNK_DELAY_SECONDS,
    DEFAULT_CHUNK_SIZE,
    STATUS_NO_VALID_ROWS,
    STATUS_PARTIALLY_FAILED,
    MAX_RECORD_ID,
    STATUS_SUCCEEDED,
    ImportBatchResult,
    ImportBatchRunner,
    coerce_record_id,
    execute_import,
)
from .context import BatchContext, HouseholdLookupCache, ImportOptions
from .matching import (
    HouseholdMatcher,
    HouseholdStrategy,
    LinkMethod,
    MatchPolicy,
    MatchResult,
    PersonMatcher,
    PersonStrategy,
    link_confidence,
)
from .merge import merge_contact_link, merge_fields, merge_household, merge_person
from .reconcile import ImportRow, RowOutcome, reconciler_for
from .unmatched import (
    AutoLinkSummary,
    UnmatchedQueueService,
    auto_link_unmatched,
    link_unmatched_record,
    list_unmatched,
    queue_unmatched,
)

__all__ = [
    "AutoLinkSummary",
    "BatchContext",
    "DEFAULT_CHUNK_DELAY_SECONDS",
    "DEFAULT_CHUNK_SIZE",
    "HouseholdLookupCache",
    "HouseholdMatcher",
    "HouseholdStrategy",
    "ImportBatchResult",
    "ImportBatchRunner",
    "ImportOptions",
    "ImportRow",
    "LinkMethod",
    "MAX_RECORD_ID",
    "MatchPolicy",
    "MatchResult",
    "PersonMatcher",
    "PersonStrategy",
    "RowOutcome",
    "STATUS_NO_VALID_ROWS",
    "STATUS_PARTIALLY_FAILED",
    "STATUS_SUCCEEDED",
    "UnmatchedQueueService",
    "auto_link_unmatched",
    "coerce_record_id",
    "execute_import",
    "link_confidence",
    "link_unmatched_record",
    "list_unmatched",
    "merge_contact_link",
    "merge_fields",
    "merge_household",
    "merge_person",
    "queue_unmatched",
    "reconciler_for",
]
