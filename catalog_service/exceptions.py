class CatalogError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BucketNotFound(CatalogError):
    status_code = 404

    def __init__(self, bucket_id: int):
        super().__init__(f"Bucket not found: {bucket_id}")
        self.bucket_id = bucket_id


class BucketAlreadyExists(CatalogError):
    status_code = 409

    def __init__(self, name: str):
        super().__init__(f"Bucket already exists: {name}")
        self.name = name


class CatalogObjectNotFound(CatalogError):
    status_code = 404

    def __init__(self, bucket_id: int, name: str):
        super().__init__(f"Catalog object not found: bucket={bucket_id} name={name}")
        self.bucket_id = bucket_id
        self.name = name


class RevisionNotFound(CatalogError):
    status_code = 404

    def __init__(self, name: str, revision_id: int | None = None):
        if revision_id is None:
            detail = f"No revision found for catalog object {name}"
        else:
            detail = f"Revision {revision_id} not found for catalog object {name}"
        super().__init__(detail)
        self.name = name
        self.revision_id = revision_id


class MalformedPayload(CatalogError):
    status_code = 422


class ArchiveReadError(CatalogError):
    status_code = 422


class DuplicateCommitRace(CatalogError):
    """Two commits allocated the same revision id for one object.

    Only reachable if per-object serialization is broken, so it is never retried.
    """

    status_code = 500
