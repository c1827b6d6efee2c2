"""
dexmirror.domain - Canonical read models for the mirrored catalog.

These are the shapes every reader of the local store receives. Nothing in
here should import from other dexmirror sub-packages (only Pydantic).
"""
