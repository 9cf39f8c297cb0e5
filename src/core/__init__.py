"""Core domain package for bitbucket-notifier.

Core contains commit resolution, key and payload construction, and the
notification dispatcher without any CI-server or config-file specific code,
keeping the business logic portable.
"""
