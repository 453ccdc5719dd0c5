"""
对话式订阅助手
"""
