"""Core domain package for telerelay.

Core contains the auth state machine, recovery policy, watermark and relay
loop without any Telethon or storage-specific code, keeping the relay logic
portable.
"""
