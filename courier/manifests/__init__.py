# courier/manifests/__init__.py

from courier.manifests.pdf_common import (
    clean_filename_keep_spaces,
    fmt_date_ddmmyyyy,
    fmt_money,
)

from courier.manifests.trip_manifest import (
    manifest_rows,
    generate_trip_manifest_pdf,
)
