from src.llm.factory import (
    get_primary_llm,
    get_primary_model_name,
    clear_llm_cache,
)
