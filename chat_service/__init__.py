"""Chat Service 顶层包。

该包是 Web 层与 OpenAI 之间的适配层：根据凭证选择官方 API 或反向代理，
转发对话并流式回调增量，查询余额与配置，并提供微调任务管理与数据预处理。
"""

from chat_service.api.service import chat_config, chat_reply_process, current_model, fetch_balance

__all__ = ["chat_config", "chat_reply_process", "current_model", "fetch_balance"]
