from __future__ import annotations

import json
from unittest import TestCase

from roadtrack.api.envelope import API_CODES, api_code, error_response, module_for_path, success_response
from roadtrack.api.errors import operation_for_error
from roadtrack.core.errors import (
    CapacityExceededError,
    ConflictError,
    CycleOutOfBoundsError,
    ForeignKeyViolationError,
    IdSequenceExhaustedError,
    RouteNotFoundError,
    ValidationError,
)


class ApiCodeTests(TestCase):
    def test_codes_follow_module_number_version_status(self) -> None:
        self.assertEqual(api_code("EQM", "CREATE_SUCCESS"), "EQM001-v1.0-201")
        self.assertEqual(API_CODES["EQR"]["FOREIGN_KEY_ERROR"], "EQR008-v1.0-400")
        self.assertEqual(API_CODES["EQH"]["INTERNAL_ERROR"], "EQH009-v1.0-500")
        self.assertEqual(API_CODES["EQM"]["APPEND_SUCCESS"], "EQM010-v1.0-200")

    def test_module_is_derived_from_request_path(self) -> None:
        self.assertEqual(module_for_path("/api/equipment-headers/EQP-00001"), "EQH")
        self.assertEqual(module_for_path("/api/equipment-routes"), "EQR")
        self.assertEqual(module_for_path("/api/equipment-movements/group/2"), "EQM")
        self.assertIsNone(module_for_path("/status"))


class EnvelopeTests(TestCase):
    def test_success_omits_empty_optional_fields(self) -> None:
        response = success_response("EQH", "GET_SUCCESS", "ok", data={"eqp_id": "EQP-00001"})

        body = json.loads(response.body)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(set(body), {"status_code", "message", "api_response_code", "data"})

    def test_error_without_module_uses_generic_code(self) -> None:
        response = error_response(None, "INTERNAL_ERROR", "boom", details={"kind": "store"})

        body = json.loads(response.body)
        self.assertEqual(body["api_response_code"], "API-ERROR-500")
        self.assertEqual(body["details"], {"kind": "store"})


class ErrorMappingTests(TestCase):
    def test_errors_map_to_operations(self) -> None:
        self.assertEqual(
            operation_for_error(CycleOutOfBoundsError(cycle_number=7, max_cycles_per_group=6)),
            "CYCLE_BOUNDS_ERROR",
        )
        self.assertEqual(operation_for_error(ValidationError("bad")), "VALIDATION_ERROR")
        self.assertEqual(operation_for_error(ForeignKeyViolationError("dangling")), "FOREIGN_KEY_ERROR")
        self.assertEqual(operation_for_error(RouteNotFoundError("ROT-00009")), "GET_ERROR")
        self.assertEqual(operation_for_error(ConflictError("dup")), "DUPLICATE_ERROR")
        self.assertEqual(
            operation_for_error(IdSequenceExhaustedError(table_name="equipment", id_for="eqp_id", max_value=99999)),
            "INTERNAL_ERROR",
        )
        self.assertEqual(operation_for_error(CapacityExceededError(dropped=1, capacity=2000)), "INTERNAL_ERROR")
