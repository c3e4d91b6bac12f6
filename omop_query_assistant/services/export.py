from __future__ import annotations

from datetime import datetime
from typing import Any

import pandas as pd
from fastapi import HTTPException


def export_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"query-result-{stamp}.csv"


def rows_to_csv(rows: list[dict[str, Any]] | None, columns: list[str] | None = None) -> str:
    if not rows:
        raise HTTPException(status_code=400, detail="No data to download")
    df = pd.DataFrame(rows)
    if columns:
        # Keep the result-set order; columns missing from the rows come out empty.
        df = df.reindex(columns=columns)
    return df.to_csv(index=False)
