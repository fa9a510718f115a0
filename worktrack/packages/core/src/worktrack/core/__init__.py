"""worktrack Core -- 领域模型、角色/租户模型、文档存储"""
