"""daycount - 单用户每日计数器：持久化 + 日/小时统计。"""
