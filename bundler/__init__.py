"""
Bundle submission with relay failover, adaptive priority fees and
dual-source confirmation.
"""
