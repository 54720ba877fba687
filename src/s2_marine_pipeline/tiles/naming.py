"""Export file naming from Sentinel-2 acquisition identifiers.

Identifiers look like ``COPERNICUS/S2/20170812T003031_20170812T003034_T55KDV``:
the acquisition timestamp follows the last ``/`` and the MGRS tile code
follows the last ``_T``.
"""

from __future__ import annotations

from typing import List, Sequence

from s2_marine_pipeline.errors import InvalidConfigurationError, NoImagesError


def tile_code(image_id: str) -> str:
    """``'..._T55KDV'`` -> ``'55KDV'``."""
    idx = image_id.rfind("_T")
    if idx < 0:
        raise InvalidConfigurationError(f"No tile code ('_T') in image id {image_id!r}")
    return image_id[idx + 2:]


def year_month(image_id: str) -> str:
    """Six-character ``YYYYMM`` token starting right after the last ``/``."""
    start = image_id.rfind("/") + 1
    token = image_id[start:start + 6]
    if len(token) != 6 or not token.isdigit():
        raise InvalidConfigurationError(f"No YYYYMM date in image id {image_id!r}")
    return token


def unique_tile_codes(image_ids: Sequence[str]) -> List[str]:
    """Distinct tile codes in order of first appearance."""
    codes: List[str] = []
    for image_id in image_ids:
        code = tile_code(image_id)
        if code not in codes:
            codes.append(code)
    return codes


def date_range_token(image_ids: Sequence[str]) -> str:
    """``'201708-n1'`` for one image, ``'<first>-<last>-n<N>'`` otherwise.

    N is the number of images; months are sorted, so input order does not
    matter.
    """
    if not image_ids:
        raise NoImagesError("Cannot build a date range from zero images")
    months = sorted(year_month(i) for i in image_ids)
    if len(months) == 1:
        return f"{months[0]}-n1"
    return f"{months[0]}-{months[-1]}-n{len(months)}"


def export_name(basename: str, style: str, image_ids: Sequence[str]) -> str:
    """``<basename>_<style>_<codes>_<daterange>``, codes joined with ``-``.

    >>> export_name("AU_AIMS_S2-marine_V1", "TrueColour",
    ...             ["COPERNICUS/S2/20170812T003031_20170812T003034_T55KDV"])
    'AU_AIMS_S2-marine_V1_TrueColour_55KDV_201708-n1'
    """
    codes = "-".join(unique_tile_codes(image_ids))
    return f"{basename}_{style}_{codes}_{date_range_token(image_ids)}"
