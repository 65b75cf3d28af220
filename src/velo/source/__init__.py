"""
Data source adapters.

A data source turns an external site into the raw records defined in
velo.source.base. The only implementation today is vlr.gg.
"""

from velo.source.base import (
    DataSource,
    DataSourceError,
    DataSourceUnavailable,
    RawMatchDetail,
    RawPlayer,
    RawTeamDetail,
    RawTeamRef,
    RawUpcomingMatch,
    extract_id_from_url,
    parse_score,
    parse_start_time,
)
from velo.source.vlr import VlrDataSource

__all__ = [
    "DataSource",
    "DataSourceError",
    "DataSourceUnavailable",
    "RawMatchDetail",
    "RawPlayer",
    "RawTeamDetail",
    "RawTeamRef",
    "RawUpcomingMatch",
    "VlrDataSource",
    "extract_id_from_url",
    "parse_score",
    "parse_start_time",
]
