from typing import Sequence

import pandera.pandas as pa


class EventTableSchema(pa.DataFrameModel):
    """
    Dynamic schema generator for event tables: one float column per channel.
    """
    @classmethod
    def create(cls, channels: Sequence[str]) -> pa.DataFrameSchema:
        return pa.DataFrameSchema(
            {channel: pa.Column(float, coerce=True, nullable=True) for channel in channels},
            strict=False,
        )
