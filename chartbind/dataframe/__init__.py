from chartbind.dataframe.frame import (
    DataFrame,
    DataFrameGroup,
    LookupFrame,
    is_data_frame,
    is_grouped_data_frame,
    key_fn,
)
from chartbind.dataframe.info import (
    range_by_group,
    range_of_group_key_per_member,
    unique_values,
    value_range,
)
from chartbind.dataframe.reindex import reindex, reindex_group

__all__ = [
    "DataFrame",
    "DataFrameGroup",
    "LookupFrame",
    "is_data_frame",
    "is_grouped_data_frame",
    "key_fn",
    "value_range",
    "range_by_group",
    "range_of_group_key_per_member",
    "unique_values",
    "reindex",
    "reindex_group",
]
