from .counselor_names import NAME as COUNSELOR_NAMES, update_counselor_names
from .future_timestamps import NAME as FUTURE_TIMESTAMPS, fix_future_timestamps
from .searchable_names import NAME as SEARCHABLE_NAMES, add_searchable_names

BACKFILLS = {
    COUNSELOR_NAMES: update_counselor_names,
    SEARCHABLE_NAMES: add_searchable_names,
    FUTURE_TIMESTAMPS: fix_future_timestamps,
}
