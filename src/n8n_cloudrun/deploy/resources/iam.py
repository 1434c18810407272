"""Service identity and IAM policy bindings."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

from google.api_core.retry import Retry
from google.iam.v1 import policy_pb2
from googleapiclient.errors import HttpError

from n8n_cloudrun.deploy.clients import is_not_found, propagation_retry
from n8n_cloudrun.deploy.resources.base import Resource

# Version 3 keeps conditional role bindings intact on write
POLICY_VERSION = 3


class IamPolicyClient(Protocol):
    """Any client exposing the standard get/set IAM policy methods."""

    def get_iam_policy(self, request: Any) -> policy_pb2.Policy: ...

    def set_iam_policy(self, request: Any) -> policy_pb2.Policy: ...


class ServiceAccount(Resource):
    """The service account the Cloud Run service runs as."""

    kind = "service account"

    def __init__(
        self,
        iam: Any,
        project_id: str,
        account_id: str,
        display_name: str,
        *,
        key: str = "service-account",
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._iam = iam
        self._project_id = project_id
        self._account_id = account_id
        self._display_name = display_name

    @property
    def email(self) -> str:
        return f"{self._account_id}@{self._project_id}.iam.gserviceaccount.com"

    @property
    def name(self) -> str:
        return f"projects/{self._project_id}/serviceAccounts/{self.email}"

    def read(self) -> dict[str, Any] | None:
        try:
            return (
                self._iam.projects().serviceAccounts().get(name=self.name).execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def create(self) -> None:
        self._iam.projects().serviceAccounts().create(
            name=f"projects/{self._project_id}",
            body={
                "accountId": self._account_id,
                "serviceAccount": {"displayName": self._display_name},
            },
        ).execute()

    def needs_update(self, current: dict[str, Any]) -> bool:
        return current.get("displayName") != self._display_name

    def update(self, current: dict[str, Any]) -> None:
        self._iam.projects().serviceAccounts().patch(
            name=self.name,
            body={
                "serviceAccount": {"displayName": self._display_name},
                "updateMask": "displayName",
            },
        ).execute()


class IamBinding(Resource):
    """A single member granted a role on a resource's IAM policy.

    Only the declared member is added; other members and bindings in the
    policy are preserved, and the policy etag guards against lost updates.
    Policies are read and written as version 3 so conditional bindings
    survive the round trip.
    """

    kind = "IAM binding"

    def __init__(
        self,
        key: str,
        client: IamPolicyClient,
        resource: str,
        role: str,
        member: str,
        *,
        depends_on: Iterable[str] = (),
        retry: Retry | None = None,
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._client = client
        self._resource = resource
        self._role = role
        self._member = member
        self._retry = retry if retry is not None else propagation_retry()

    @property
    def name(self) -> str:
        return f"{self._resource} {self._role} {self._member}"

    def _get_policy(self) -> policy_pb2.Policy:
        return self._client.get_iam_policy(
            request={
                "resource": self._resource,
                "options": {"requested_policy_version": POLICY_VERSION},
            }
        )

    def _matches(self, binding: policy_pb2.Binding) -> bool:
        return binding.role == self._role and not binding.HasField("condition")

    def read(self) -> policy_pb2.Binding | None:
        policy = self._get_policy()
        for binding in policy.bindings:
            if self._matches(binding) and self._member in binding.members:
                return binding
        return None

    def create(self) -> None:
        # A member that was just created may not be visible to IAM yet
        self._retry(self._add_member)()

    def _add_member(self) -> None:
        policy = self._get_policy()
        for binding in policy.bindings:
            if self._matches(binding):
                binding.members.append(self._member)
                break
        else:
            policy.bindings.add(role=self._role, members=[self._member])

        policy.version = POLICY_VERSION
        self._client.set_iam_policy(
            request={"resource": self._resource, "policy": policy}
        )
