"""
Documents module.

A user's document library. Requirements link to these records; the file bytes are
uploaded to and downloaded from object storage through presigned URLs.
"""
