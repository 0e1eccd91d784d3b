"""Fine-tune management (REST operations, CLI job creation, data preparation)."""

from .config import FineTuneCreateRequest, UploadedFile
from .prepare import prepare_data, upload_file
from .service import cancel_model, create_model, delete_model, get_list, get_model_detail, get_models

__all__ = [
    "FineTuneCreateRequest",
    "UploadedFile",
    "cancel_model",
    "create_model",
    "delete_model",
    "get_list",
    "get_model_detail",
    "get_models",
    "prepare_data",
    "upload_file",
]
