"""Shared fixtures: sample OpenAPI documents and an isolated run store."""

import pytest
import pytest_asyncio

from contract_grader.db import close_db, init_db

COMPLIANT_SPEC = """\
openapi: 3.0.3
info:
  title: Widget Service
  version: 1.4.0
  contact:
    email: api@example.com
servers:
  - url: https://api.example.com
paths:
  /api/v2/widgets:
    get:
      operationId: listWidgets
      parameters:
        - $ref: '#/components/parameters/OrganizationHeader'
        - $ref: '#/components/parameters/BranchHeader'
        - $ref: '#/components/parameters/AfterKey'
        - $ref: '#/components/parameters/BeforeKey'
        - $ref: '#/components/parameters/Limit'
        - $ref: '#/components/parameters/Sort'
        - name: status
          in: query
          schema:
            type: string
      responses:
        '200':
          description: A page of widgets
          headers:
            ETag:
              schema:
                type: string
            Cache-Control:
              schema:
                type: string
          content:
            application/json:
              schema:
                $ref: '#/components/schemas/WidgetPage'
        '304':
          description: Not modified
        '400':
          description: Invalid filter
          content:
            application/problem+json:
              schema:
                $ref: '#/components/schemas/ProblemDetails'
components:
  parameters:
    OrganizationHeader:
      name: X-Organization-ID
      in: header
      required: true
      schema:
        type: string
    BranchHeader:
      name: X-Branch-ID
      in: header
      required: true
      schema:
        type: string
    AfterKey:
      name: after_key
      in: query
      schema:
        type: string
    BeforeKey:
      name: before_key
      in: query
      schema:
        type: string
    Limit:
      name: limit
      in: query
      schema:
        type: integer
    Sort:
      name: sort
      in: query
      schema:
        type: string
  schemas:
    WidgetPage:
      type: object
      required: [success, data]
      properties:
        success:
          type: boolean
        data:
          type: array
          items:
            type: object
    ProblemDetails:
      type: object
      properties:
        type:
          type: string
        title:
          type: string
  securitySchemes:
    OAuth2:
      type: oauth2
      flows:
        clientCredentials:
          tokenUrl: https://auth.example.com/token
          scopes: {}
"""

NO_NAMESPACE_SPEC = """\
openapi: 3.0.3
info:
  title: Shop
  version: 1.0.0
paths:
  /users:
    get:
      responses:
        '200':
          description: OK
  /products:
    get:
      responses:
        '200':
          description: OK
"""

OFFSET_SPEC = """\
openapi: 3.0.3
info:
  title: Orders
  version: 2.0.0
paths:
  /api/v2/orders:
    get:
      parameters:
        - name: offset
          in: query
          schema:
            type: integer
        - name: page
          in: query
          schema:
            type: integer
      responses:
        '200':
          description: OK
"""

NO_PATHS_SPEC = """\
openapi: 3.0.3
info:
  title: Empty
  version: 1.0.0
"""


@pytest.fixture
def compliant_spec():
    return COMPLIANT_SPEC


@pytest.fixture
def no_namespace_spec():
    return NO_NAMESPACE_SPEC


@pytest.fixture
def offset_spec():
    return OFFSET_SPEC


@pytest.fixture
def no_paths_spec():
    return NO_PATHS_SPEC


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep grading configuration from the host environment out of tests."""
    for name in ("GRADER_DOMAIN", "GRADER_TEMPLATE_PATH", "GRADER_TIMEOUT", "GRADER_FETCH_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest_asyncio.fixture
async def store(tmp_path, monkeypatch):
    """A fresh SQLite run store under tmp_path."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    await close_db()
    await init_db()
    yield tmp_path
    await close_db()
