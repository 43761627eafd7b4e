class FakeObjectStore:
    """In-memory stand-in for the S3 bucket calls made through StorageService."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.fail_uploads = False

    def upload_bytes(self, bucket, key, data, content_type):
        if self.fail_uploads:
            raise RuntimeError("Storage unavailable")
        self.objects[(bucket, key)] = data

    def download_bytes(self, bucket, key):
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise RuntimeError(f"NoSuchKey: {bucket}/{key}")

    def delete_object(self, bucket, key):
        self.objects.pop((bucket, key), None)

    def generate_upload_url(self, bucket, key, mime_type):
        return f"https://s3.test/{bucket}/{key}?upload=1"

    def generate_download_url(self, bucket, key):
        return f"https://s3.test/{bucket}/{key}"

    def keys(self, bucket):
        return sorted(k for b, k in self.objects if b == bucket)
