"""系统提示词加载工具。

ChatGPTAPI 模式下，调用方未传 system_message 时使用 default_system.md，
其中的 {current_date} 在每次调用时替换为当天日期。
"""

from datetime import date
from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(current_date: Optional[date] = None) -> str:
    """读取默认系统提示词并填入当前日期。"""

    template = (PROMPTS_DIR / "default_system.md").read_text(encoding="utf-8").strip()
    today = current_date or date.today()
    return template.replace("{current_date}", today.isoformat())
