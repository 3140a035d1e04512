"""Pydantic 请求/响应模型"""
