"""
Raw ballot format loaders.

Importing this package registers every loader with the format registry, so
``get_loader(election.data_format)`` can resolve any supported format:

- simple_json: direct JSON rankings (tests, small elections)
- us_mn_mpls: Minneapolis precinct CSV
- us_vt_btv: Burlington ballot listing
- nist_sp_1500: NIST / Dominion CvrExport JSON
- us_ny_nyc: NYC Board of Elections Excel workbooks
- us_ca_sfo: fixed-width ballot image with master lookup
- rcv_rounds: round-by-round tally spreadsheets (reconstructed ballots)
"""

from . import (  # noqa: F401
    nist_sp_1500,
    rcv_rounds,
    simple_json,
    us_ca_sfo,
    us_mn_mpls,
    us_ny_nyc,
    us_vt_btv,
)
from .base import CandidateMap, FormatLoader, available_formats, get_loader

__all__ = ["CandidateMap", "FormatLoader", "available_formats", "get_loader"]
