"""Room and game-session core.

Controllers and pure helpers that talk to storage only through a
ChangeBridge, keeping transport concerns in the blueprints and socket
handlers.
"""
