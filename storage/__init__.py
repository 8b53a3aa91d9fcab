"""Blob storage for uploaded CV files."""
from storage.blob_store import BlobStore, Blob, LocalPathBlobStore, S3LikeBlobStore, build_blob_store

__all__ = ['BlobStore', 'Blob', 'LocalPathBlobStore', 'S3LikeBlobStore', 'build_blob_store']
