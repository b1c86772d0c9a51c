"""funder-export: funder compliance exports for case-management data.

The package maps client and program records onto funder-specific schemas,
validates them against compliance rules, serializes them into the file
formats funders require, and runs the whole pipeline on a cron schedule.

Architecture
------------
* ``transformer``: Value formatters (date, code, number, ssn, phone) driven by spec strings.
* ``extractor``: Field-path resolution, field mapping and batched record extraction.
* ``validation``: Generic rules, funder-specific cross-field checks and report formatting.
* ``generators``: CSV (pandas), pipe-delimited TXT and XLSX (openpyxl) writers.
* ``scheduler``: Cron parsing, next-run search, reporting periods and schedule state.
* ``templates``: Predefined funder templates (``config/templates/*.json``) and lifecycle.
* ``pipeline``: Export orchestration (run / preview / retry) and file storage.

Configuration
-------------
Paths default to the ``data/`` and ``logs/`` trees but respect ``DATA_DIR``
and ``LOGS_DIR`` overrides. ``EXPORT_TIMEZONE`` sets the default schedule
timezone and ``EXPORT_BATCH_SIZE`` the extraction batch size.

Examples
--------
Export a JSON file of subjects with the predefined HMIS template:

    >>> python -m funder_export.main export --type HUD_HMIS --input clients.json \\
    ...     --start 2024-01-01 --end 2024-02-01

Next run of a cron expression:

    >>> python -m funder_export.main next-run "0 6 1 * *" --from 2024-01-15T10:00
"""

__version__ = "0.1.0"
__all__ = ["__version__"]


def get_version() -> str:
    """Return the current package version string.

    Returns
    -------
    str
        Semantic version identifier (e.g., ``"0.1.0"``).
    """
    return __version__


__all__.append("get_version")
