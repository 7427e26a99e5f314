import typing as tp

from anyio import to_thread
from botocore.exceptions import ClientError

MISSING_OBJECT_CODES = ("NoSuchKey", "404", "NotFound")


class S3Manager:
    def __init__(self, client: tp.Any, bucket_name: str, key_prefix: str = "") -> None:
        self._client = client
        self._bucket_name = bucket_name
        self._key_prefix = key_prefix

    def write_to(self, path: str, data: tp.Union[bytes, str]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")

        self._client.put_object(
            Bucket=self._bucket_name,
            Key=self._key_prefix + path,
            Body=data,
            ContentType="application/json",
        )

    def read_from(self, path: str) -> tp.Optional[str]:
        try:
            response = self._client.get_object(
                Bucket=self._bucket_name,
                Key=self._key_prefix + path,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_OBJECT_CODES:
                return None
            raise e

        content = response["Body"].read()
        return tp.cast(str, content.decode("utf-8"))


class AsyncS3Manager:
    def __init__(self, client: tp.Any, bucket_name: str, key_prefix: str = "") -> None:
        self._sync_manager = S3Manager(client, bucket_name, key_prefix)

    async def write_to(self, path: str, data: tp.Union[bytes, str]) -> None:
        return await to_thread.run_sync(self._sync_manager.write_to, path, data)

    async def read_from(self, path: str) -> tp.Optional[str]:
        return await to_thread.run_sync(self._sync_manager.read_from, path)
