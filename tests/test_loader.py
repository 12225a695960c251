import json
import textwrap

import pytest

from oas import ParameterLocation, SpecError, SpecResolver, load_spec

PETSTORE = textwrap.dedent("""
    openapi: 3.0.3
    info:
      title: Pets
      version: "2.1"
    paths:
      /pets/{petId}:
        parameters:
          - name: petId
            in: path
            schema: {type: string}
          - name: verbose
            in: query
            schema: {type: boolean}
        get:
          operationId: getPet
          parameters:
            - name: petId
              in: path
              required: true
              schema: {type: integer, format: int64}
            - name: Accept
              in: header
              schema: {type: string}
            - name: x-request-id
              in: header
              schema: {type: string}
            - $ref: '#/components/parameters/Session'
          responses:
            "200": {description: ok}
            "4xx": {description: client error}
            default: {description: other}
        delete:
          responses:
            "204": {description: gone}
      /pets:
        post:
          requestBody:
            required: true
            content:
              application/xml:
                schema: {type: string}
              application/json:
                schema:
                  $ref: '#/components/schemas/Pet'
          responses:
            "201": {description: created}
    components:
      parameters:
        Session:
          name: session
          in: cookie
          required: true
          schema: {type: string}
      schemas:
        Pet:
          type: object
          required: [name]
          properties:
            name: {type: string, minLength: 1}
            age: {type: integer, minimum: 0, exclusiveMinimum: true}
            parent:
              $ref: '#/components/schemas/Pet'
            children:
              type: array
              items:
                $ref: '#/components/schemas/Pet'
            kind:
              oneOf:
                - {type: string}
                - {type: integer}
""")


@pytest.fixture
def spec_file(tmp_path):
    path = tmp_path / "petstore.yaml"
    path.write_text(PETSTORE, encoding="utf-8")
    return path


def test_operations_in_document_order(spec_file):
    spec = load_spec(str(spec_file))
    assert spec.title == "Pets"
    assert spec.version == "2.1"
    assert [op.identity for op in spec.operations] == [
        "GET /pets/{petId}",
        "DELETE /pets/{petId}",
        "POST /pets",
    ]


def test_operation_parameters_override_path_level(spec_file):
    get_pet = load_spec(str(spec_file)).operations[0]
    by_name = {p.name: p for p in get_pet.parameters}
    assert by_name["petId"].schema.types == ("integer",)
    assert by_name["petId"].required
    assert by_name["verbose"].location is ParameterLocation.QUERY
    assert by_name["session"].location is ParameterLocation.COOKIE
    assert "Accept" not in by_name
    assert "x-request-id" in by_name


def test_path_parameters_always_required(spec_file):
    delete_pet = load_spec(str(spec_file)).operations[1]
    (pet_id,) = [p for p in delete_pet.parameters if p.name == "petId"]
    assert pet_id.required
    assert pet_id.schema.types == ("string",)


def test_declared_status_codes(spec_file):
    get_pet = load_spec(str(spec_file)).operations[0]
    assert get_pet.declared_status_codes == {"200", "4XX"}
    assert get_pet.declares_status(404)
    assert not get_pet.declares_status(500)


def test_json_body_preferred(spec_file):
    post = load_spec(str(spec_file)).operations[2]
    assert post.content_type == "application/json"
    assert post.body_required
    assert post.request_body.required == {"name"}


def test_self_reference_becomes_cycle(spec_file):
    pet = load_spec(str(spec_file)).operations[2].request_body
    assert pet.properties["parent"] is pet
    assert pet.properties["children"].items is pet
    assert pet.ref == "#/components/schemas/Pet"


def test_constraints_and_variants(spec_file):
    pet = load_spec(str(spec_file)).operations[2].request_body
    age = pet.properties["age"]
    assert age.minimum == 0 and age.exclusive_minimum
    assert pet.properties["name"].min_length == 1
    assert len(pet.properties["kind"].variants) == 2


def test_json_document_and_31_features(tmp_path):
    doc = {
        "openapi": "3.1.0",
        "info": {"title": "t", "version": "1"},
        "paths": {
            "/a~b/{x}": {
                "get": {
                    "parameters": [{"name": "x", "in": "path",
                                    "schema": {"$ref": "#/components/schemas/a~1b"}}],
                    "responses": {"200": {"description": "ok"}},
                }
            }
        },
        "components": {"schemas": {"a/b": {"type": ["integer", "null"], "exclusiveMaximum": 10}}},
    }
    path = tmp_path / "api.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    schema = load_spec(str(path)).operations[0].parameters[0].schema
    assert schema.types == ("integer", "null")
    assert schema.allows_null
    assert schema.maximum == 10 and schema.exclusive_maximum


def test_missing_file_raises(tmp_path):
    with pytest.raises(SpecError):
        load_spec(str(tmp_path / "nope.yaml"))


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("openapi: [unclosed", encoding="utf-8")
    with pytest.raises(SpecError):
        load_spec(str(path))


@pytest.mark.parametrize("document", [
    [],
    {"swagger": "2.0", "paths": {}},
    {"openapi": "3.0.0"},
])
def test_non_openapi3_documents_rejected(document):
    with pytest.raises(SpecError):
        SpecResolver(document)


def test_unresolvable_ref_raises():
    doc = {"openapi": "3.0.0", "paths": {"/x": {"post": {
        "requestBody": {"content": {"application/json": {"schema": {"$ref": "#/components/schemas/Missing"}}}},
        "responses": {},
    }}}}
    with pytest.raises(SpecError):
        SpecResolver(doc).build()


def test_circular_alias_raises():
    doc = {
        "openapi": "3.0.0",
        "paths": {"/x": {"post": {
            "requestBody": {"content": {"application/json": {"schema": {"$ref": "#/components/schemas/A"}}}},
            "responses": {},
        }}},
        "components": {"schemas": {"A": {"$ref": "#/components/schemas/B"}, "B": {"$ref": "#/components/schemas/A"}}},
    }
    with pytest.raises(SpecError):
        SpecResolver(doc).build()


def test_remote_refs_rejected():
    doc = {"openapi": "3.0.0", "paths": {"/x": {"get": {
        "parameters": [{"$ref": "other.yaml#/components/parameters/P"}],
        "responses": {},
    }}}}
    with pytest.raises(SpecError):
        SpecResolver(doc).build()
