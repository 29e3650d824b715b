"""
Tool bridge: exposes service operations to a tool-calling protocol by
compiling their parameter-validation rules into validators and tool input
schemas.
"""
