"""
Identity normalization package.

Maps raw DingTalk profile documents into canonical identity records.
"""
