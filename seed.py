"""
Seed the grading scales collection with the primary (A-F) and secondary
(A1-F9) bands.

Usage: python seed.py
"""
import logging

from grading import DEFAULT_GRADING_SCALES
from schemas import GradingScale

logger = logging.getLogger(__name__)


def seed_grading_scales(repo) -> int:
    entries = [GradingScale(**band).model_dump() for band in DEFAULT_GRADING_SCALES]
    count = repo.replace_grading_scales(entries)
    for band in entries:
        logger.info("  [%s] %s: %s-%s%% (%s)", band["scale_set"], band["grade"], band["min"], band["max"], band["remark"])
    logger.info("Seeded %d grading scales", count)
    return count


if __name__ == "__main__":
    from database import get_repository

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    seed_grading_scales(get_repository())
