from __future__ import annotations

from dataclasses import dataclass

from dapi.errors import DapiError


# Application wiring failures, as opposed to request errors.
@dataclass
class DataSourceConfigError(DapiError):
    http_status: int = 500
    code: str = "data_source_config_error"
