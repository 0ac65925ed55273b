"""
Basic usage example for gistdb.
"""

import os

from gistdb import CompressionType, Config, GistDatabase

# Create a new database (a private root gist)
print("Creating database...")
config = Config(
    token=os.environ["GIST_TOKEN"],
    compression=CompressionType.BINARY,
    encryption_key=os.environ.get("GIST_ENCRYPTION_KEY"),
)
db = GistDatabase(config).init()
print(f"Database gist: {db.gist_id}")

# Write and read a document
doc = db.set("albums.pending", {"lastSyncAt": 1672692167887, "albums": []})
print(f"\nStored revision {doc.rev} in gist {doc.id}")

found = db.get("albums.pending")
print(f"Value: {found.value}")

# Optimistic concurrency: pass the revision you read
db.set("albums.pending", {"lastSyncAt": 1672692200000, "albums": []}, rev=found.rev)

# Expiring key with an attached file
db.set("session.42", {"user": "ada"}, ttl=60_000, files={"notes.md": "# Session notes"})
print(f"\nAttachment: {db.get('session.42').files}")

# Clean up everything
print("\nDestroying database...")
db.destroy()
