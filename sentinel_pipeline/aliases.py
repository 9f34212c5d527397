"""
Alias dictionary.
==================
Known alternative header spellings for every canonical login field, plus a
secondary set of behavioral indicator columns that are looked up on demand
from an event's preserved columns.

Order matters: earlier aliases are preferred by the schema mapper.
"""
from __future__ import annotations

from typing import Dict, Tuple


# Canonical fields in the order the mapper resolves them.
CANONICAL_FIELDS: Tuple[str, ...] = (
    "user_id",
    "timestamp",
    "lat",
    "long",
    "device_id",
    "ip_address",
    "login_result",
)

# Without these the pipeline cannot run at all.
CRITICAL_FIELDS: Tuple[str, ...] = ("user_id", "timestamp")

OPTIONAL_DEFAULTS: Dict[str, str] = {
    "lat": "0",
    "long": "0",
    "device_id": "unknown",
    "ip_address": "",
    "login_result": "",
}


COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "user_id": (
        "user_id", "userid", "user", "username", "user_name", "uid",
        "account_id", "accountid", "account", "email", "email_address",
        "login", "login_id", "loginid", "subject", "sub", "identity",
        "member_id", "memberid", "emp_id", "empid", "employee_id",
        "client_id", "clientid", "name", "id",
    ),
    "timestamp": (
        "timestamp", "time", "datetime", "date_time", "date", "login_time",
        "login_timestamp", "event_time", "event_timestamp", "created_at",
        "createdat", "logged_at", "loggedat", "ts", "event_date",
        "login_date", "access_time", "auth_time", "session_start",
        "start_time", "logon_time", "sign_in_time",
    ),
    "lat": (
        "lat", "latitude", "geo_lat", "geolat", "location_lat",
        "loc_lat", "y", "start_lat", "src_lat", "origin_lat", "gps_lat",
    ),
    "long": (
        "long", "longitude", "lng", "lon", "geo_long", "geolong",
        "location_long", "loc_long", "location_lng", "loc_lng",
        "x", "start_long", "src_long", "origin_long", "gps_long",
        "start_lng", "src_lng", "origin_lng", "gps_lng",
    ),
    "device_id": (
        "device_id", "deviceid", "device", "device_name", "devicename",
        "device_fingerprint", "fingerprint", "browser", "user_agent",
        "useragent", "ua", "client", "device_type", "devicetype",
        "machine", "machine_id", "machineid", "hardware_id", "hardwareid",
        "terminal", "terminal_id", "agent",
    ),
    "ip_address": (
        "ip_address", "ip", "ipaddress", "ip_addr", "ipaddr",
        "source_ip", "sourceip", "src_ip", "srcip", "client_ip",
        "clientip", "remote_ip", "remoteip", "origin_ip", "originip",
        "host", "address", "network_address",
    ),
    "login_result": (
        "login_result", "result", "status", "outcome", "success",
        "auth_result", "authresult", "login_status", "loginstatus",
        "authentication_result", "auth_status", "response", "action",
        "event_type", "eventtype", "login_outcome", "pass_fail",
    ),
}


# Behavioral columns are never mapped onto CanonicalEvent fields; the
# scoring engine resolves them from CanonicalEvent.extra at detection time.
BEHAVIORAL_ALIASES: Dict[str, Tuple[str, ...]] = {
    "failed_logins": (
        "failedloginattempts", "failed_login_attempts", "failedlogins",
        "failed_logins", "login_failures", "loginfailures", "num_failed_logins",
    ),
    "anomalous_activity": (
        "anomalousactivity", "anomalous_activity", "is_anomalous", "isanomalous",
        "anomaly", "anomaly_flag", "anomalyflag",
    ),
    "incident_reports": (
        "incidentreports", "incident_reports", "incidents", "num_incidents",
        "security_incidents", "securityincidents",
    ),
    "password_resets": (
        "passwordresets", "password_resets", "pwd_resets", "pwdresets",
        "num_password_resets", "reset_count",
    ),
    "access_sensitive": (
        "accesstosensitivedata", "access_to_sensitive_data", "sensitive_data",
        "sensitivedata", "sensitive_access", "sensitiveaccess",
    ),
    "login_consistency": (
        "loginconsistency", "login_consistency", "login_regularity",
        "loginregularity",
    ),
    "device_consistency": (
        "deviceconsistency", "device_consistency", "device_regularity",
        "deviceregularity",
    ),
    "location_consistency": (
        "accesslocationconsistency", "access_location_consistency",
        "locationconsistency", "location_consistency", "geo_consistency",
        "geoconsistency",
    ),
    "failed_transactions": (
        "failedtransactions", "failed_transactions", "transaction_failures",
        "transactionfailures", "num_failed_transactions",
    ),
    "session_duration": (
        "sessionduration", "session_duration", "duration", "session_length",
        "sessionlength", "time_spent", "timespent",
    ),
    "mfa_enabled": (
        "mfaenabled", "mfa_enabled", "mfa", "two_factor", "twofactor",
        "2fa", "multi_factor", "multifactor",
    ),
    "access_frequency": (
        "accessfrequency", "access_frequency", "login_frequency",
        "loginfrequency", "frequency", "num_accesses",
    ),
}


def all_column_aliases() -> frozenset:
    """Every canonical alias, flattened (used to score candidate header lines)."""
    return frozenset(alias for aliases in COLUMN_ALIASES.values() for alias in aliases)
