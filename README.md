# tripguard

Risk controls and user account management for a group-travel platform.
All data lives in a `sqlite3` connection that you open and pass in, so the
package needs nothing beyond the standard library.

## Modules

| Module | Contents |
| --- | --- |
| `tripguard.errors` | `DomainError` and its subclasses |
| `tripguard.risk_models` | dataclasses for risk events, scores, throttles, blacklists, approvals and summaries |
| `tripguard.risk_repository` | `RiskRepository`, SQLite storage for the risk data |
| `tripguard.risk_engine` | `RiskEngine` and `determine_severity` |
| `tripguard.risk_service` | `RiskService`, the operations an administrator uses |
| `tripguard.users_models` | `User`, `UserProfile`, `UserPreference`, `UserView`, `ProfileUpdate` |
| `tripguard.users_repository` | `UserRepository`, SQLite storage for users |
| `tripguard.users_service` | `UserService`, `can_access_user`, `page_summary` |
| `tripguard.worker` | `Worker`, periodic maintenance jobs |

## Risk

`RiskRepository(conn).create_schema()` creates the tables it uses
(`risk_events`, `risk_scores`, `throttle_actions`, `blacklist_records`,
`admin_approvals` and `rfqs`).

- **Severity.** `determine_severity` maps `harassment_flag` to `high`,
  `cancellation` to `medium`, and everything else (including `rfq_creation`)
  to `low`.
- **Score.** `RiskRepository.compute_and_save_risk_score` counts the user's
  events of the last 30 days by severity, scores 10 per high, 5 per medium
  and 1 per low event, caps the result at 100, and saves it with the counts
  as its `factors`.
- **Decisions.** `RiskEngine.evaluate_action(user_id, action_type)` returns a
  `RiskDecision`, checking in this order:
  1. an active blacklist record refuses the action;
  2. a live throttle on the action or on `*` refuses it;
  3. more than 8 cancellation events in 24 hours throttles the action for
     6 hours, queues a pending `AdminApproval` of reference type
     `cancellation_throttle`, and refuses with `require_approval=True`;
  4. for `create_rfq`, 20 or more rows in `rfqs` created by the user in the
     last 10 minutes throttles `create_rfq` for 1 hour and refuses;
  5. 3 or more harassment flags throttle `*` for 24 hours and refuse;
  6. otherwise the action is allowed.

  Storage errors while reading the blacklist or throttles propagate; errors
  while counting are logged and that rule is skipped.
- `RiskEngine.record_and_evaluate` stores an event with its severity from
  `determine_severity`, recomputes the score, then evaluates the event type
  as an action.
- `RiskService` offers `get_risk_summary` (blacklist state, latest score,
  live throttles and the 20 most recent events), `evaluate_action`,
  `record_event` (severity given by the caller, returns the event id),
  `blacklist_user` (a reason is required), `unblacklist_user`,
  `get_pending_approvals` (oldest first) and `resolve_approval` (status must
  be `approved` or `rejected`).

`RiskDecision`, `AdminApproval` and `RiskSummary` have `to_dict()` methods
producing camelCase JSON-ready dictionaries with ISO-8601 timestamps;
`requireApproval` appears only when it is true.

```python
import sqlite3

from tripguard.errors import BadRequestError
from tripguard.risk_repository import RiskRepository
from tripguard.risk_service import RiskService

conn = sqlite3.connect(":memory:")
repo = RiskRepository(conn)
repo.create_schema()

service = RiskService(repo)
service.record_event("user-1", "cancellation", "cancelled booking", "medium")

decision = service.evaluate_action("user-1", "create_booking")
print(decision.to_dict())  # {'allowed': True, 'reason': ''}

print(service.get_risk_summary("user-1").to_dict())

try:
    service.blacklist_user("user-1", "admin-1", "")
except BadRequestError as exc:
    print(exc)  # reason is required
```

## Users

`UserRepository(conn).create_schema()` creates `users`, `user_profiles`,
`user_preferences`, `roles` and `user_roles`.

- `UserRepository.get_by_id` returns a `UserView` with display name and
  roles for a user that is not soft-deleted, or `None`.
- `update_profile` applies a `ProfileUpdate`: a display name creates or
  updates the profile; a masked phone is only written to an existing profile.
- `update_preferences` replaces the preferences document;
  `get_preferences` returns it, or `{}` when none is stored.
- `list_users(page, page_size, status)` returns one page of live users,
  newest first, and the total count; an empty status means any status.
  Listed users carry no roles.

`UserService` checks access with `can_access_user`: an actor may act on a
user only if they are that user or hold the `administrator` role (the
literal role name; `admin` is not enough). `view_user`, `update_profile`
and `update_preferences` raise `ForbiddenError` before touching storage;
`get_user` and `view_user` raise `NotFoundError` for a missing user.
`page_summary` builds a listing dict with `items`, `total`, `page`,
`page_size` and `total_pages`.

```python
from tripguard.users_repository import UserRepository
from tripguard.users_service import UserService, can_access_user

user_repo = UserRepository(conn)
user_repo.create_schema()
users = UserService(user_repo)

print(can_access_user("user-1", ["traveler"], "user-2"))       # False
print(can_access_user("user-1", ["administrator"], "user-2"))  # True
```

## Background jobs

`Worker(conn)` runs four jobs in daemon threads once `start()` is called,
and `stop()` ends them and waits. Each job can also be called directly and
returns the number of rows it affected:

| Job | Interval | Effect |
| --- | --- | --- |
| `process_deferred_notifications` | 1 minute | marks `deferred` rows in `notification_recipients` whose `deferred_until` has passed as `delivered` |
| `cleanup_stale_download_tokens` | 5 minutes | deletes expired rows from `download_tokens` |
| `recompute_risk_scores` | 10 minutes | for each user with a risk event in the last hour, saves a score over the last 30 days (critical 10, high 5, medium 2, low or other 1, uncapped) |
| `cleanup_expired_idempotency_keys` | 15 minutes | deletes expired rows from `idempotency_keys` |

The connection is shared between threads, so open it with
`sqlite3.connect(..., check_same_thread=False)`. A failing job is logged
and retried at its next interval.

## Errors

Services raise subclasses of `DomainError`, each with a `code` and an HTTP
`status`: `BadRequestError` (400), `ForbiddenError` (403), `NotFoundError`
(404) and `InternalError` (500, wrapping a storage error as its cause).

## What it does not do

- There is no HTTP server, routing or authentication; callers map
  `DomainError` codes and statuses to responses themselves.
- There is no command-line program.
- Nothing creates users or assigns roles; insert those rows directly.
- The `Worker` jobs expect `notification_recipients`, `download_tokens` and
  `idempotency_keys` tables, which no schema here creates; the risk jobs use
  the tables from `RiskRepository.create_schema`.