"""
Built-in tool groups.

A tool group is a module-level function register(registry, config) listed
in the gateway's tool_modules setting.
"""
