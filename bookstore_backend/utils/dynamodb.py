"""
DynamoDB utilities for the FindBooks API

Provides functions for building update expressions, paginated reads and
TransactWriteItems entries.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

_serializer = TypeSerializer()


def build_update_expression(
    fields: dict[str, Any], allow_remove: bool = False
) -> tuple[str, dict[str, Any], dict[str, str]]:
    """
    Build DynamoDB update expression from a dictionary of fields.

    Args:
        fields: Dictionary of field names to values
        allow_remove: If True, None values will REMOVE the attribute

    Returns:
        tuple: (update_expression, expression_attribute_values, expression_attribute_names)

    Example:
        fields = {"order_status": "Shipped", "delivery_user_id": None}
        expr, values, names = build_update_expression(fields, allow_remove=True)
        # expr = "SET #order_status = :order_status REMOVE #delivery_user_id"
        # values = {":order_status": "Shipped"}
        # names = {"#order_status": "order_status", "#delivery_user_id": "delivery_user_id"}
    """
    update_expr_parts = []
    remove_expr_parts = []
    expr_attr_values: dict[str, Any] = {}
    expr_attr_names: dict[str, str] = {}

    for field, value in fields.items():
        # Use attribute name placeholders to avoid reserved word conflicts
        name_placeholder = f"#{field}"
        value_placeholder = f":{field}"

        expr_attr_names[name_placeholder] = field

        if allow_remove and (value is None or value == ""):
            remove_expr_parts.append(name_placeholder)
        else:
            update_expr_parts.append(f"{name_placeholder} = {value_placeholder}")
            expr_attr_values[value_placeholder] = value

    update_expression_parts = []
    if update_expr_parts:
        update_expression_parts.append("SET " + ", ".join(update_expr_parts))
    if remove_expr_parts:
        update_expression_parts.append("REMOVE " + ", ".join(remove_expr_parts))

    update_expression = " ".join(update_expression_parts)

    return update_expression, expr_attr_values, expr_attr_names


def build_update_params(
    key: Dict[str, Any],
    fields: Dict[str, Any],
    allow_remove: bool = False,
    condition_expression: str | None = None,
    condition_values: Dict[str, Any] | None = None,
    condition_names: Dict[str, str] | None = None,
    return_values: str = "ALL_NEW"
) -> Dict[str, Any]:
    """
    Build complete DynamoDB update_item parameters.

    Args:
        key: Primary key for the item to update
        fields: Dictionary of field names to values
        allow_remove: If True, None/empty values will REMOVE the attribute
        condition_expression: Optional condition expression
        condition_values: Extra ExpressionAttributeValues used only by the condition
        condition_names: Extra ExpressionAttributeNames used only by the condition
        return_values: Return values option (default: ALL_NEW)

    Returns:
        dict: Complete parameters for table.update_item()

    Example:
        params = build_update_params(
            key={"id": "order-123"},
            fields={"order_status": "Shipped"},
            condition_expression="attribute_exists(id) AND #order_status = :current_status",
            condition_values={":current_status": "Pending"},
        )
        response = table.update_item(**params)
    """
    update_expression, expr_values, expr_names = build_update_expression(
        fields, allow_remove=allow_remove
    )
    expr_values.update(condition_values or {})
    expr_names.update(condition_names or {})

    params = {
        "Key": key,
        "UpdateExpression": update_expression,
        "ExpressionAttributeNames": expr_names,
        "ReturnValues": return_values,
    }

    # Only add ExpressionAttributeValues if not empty (REMOVE-only operations have no values)
    if expr_values:
        params["ExpressionAttributeValues"] = expr_values

    if condition_expression:
        params["ConditionExpression"] = condition_expression

    return params


def build_transact_update(table_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn update_item parameters (resource format) into a TransactWriteItems entry.

    The low-level client needs typed attribute values, so keys and expression
    values are run through boto3's TypeSerializer.

    Args:
        table_name: DynamoDB table name
        params: Output of build_update_params()

    Returns:
        dict: {"Update": {...}} entry for client.transact_write_items()
    """
    update = {
        "TableName": table_name,
        "Key": {k: _serializer.serialize(v) for k, v in params["Key"].items()},
        "UpdateExpression": params["UpdateExpression"],
        "ExpressionAttributeNames": params["ExpressionAttributeNames"],
    }
    if params.get("ExpressionAttributeValues"):
        update["ExpressionAttributeValues"] = {
            k: _serializer.serialize(v) for k, v in params["ExpressionAttributeValues"].items()
        }
    if params.get("ConditionExpression"):
        update["ConditionExpression"] = params["ConditionExpression"]
    return {"Update": update}


def is_condition_failure(error: ClientError) -> bool:
    """True when a write was rejected by its condition expression."""
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def is_transaction_cancelled(error: ClientError) -> bool:
    """True when a TransactWriteItems call was cancelled as a whole."""
    return error.response.get("Error", {}).get("Code") == "TransactionCanceledException"


def scan_all(table, **kwargs) -> list[dict]:
    """
    Scan a table following LastEvaluatedKey until every page is read.

    Args:
        table: boto3 Table resource
        **kwargs: Extra scan() parameters (FilterExpression, ...)

    Returns:
        list: All items
    """
    response = table.scan(**kwargs)
    items = response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        items.extend(response.get("Items", []))
    return items


def query_all(table, **kwargs) -> list[dict]:
    """Query a table or index following LastEvaluatedKey until every page is read."""
    response = table.query(**kwargs)
    items = response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        items.extend(response.get("Items", []))
    return items


def query_index(table, index_name: str, attribute: str, value: Any, **kwargs) -> list[dict]:
    """
    Query a GSI by equality on its partition key.

    Example:
        orders = query_index(config.orders_table, "CartIndex", "cart_id", cart_id)
    """
    return query_all(
        table,
        IndexName=index_name,
        KeyConditionExpression=f"#{attribute} = :{attribute}",
        ExpressionAttributeNames={f"#{attribute}": attribute},
        ExpressionAttributeValues={f":{attribute}": value},
        **kwargs,
    )


def get_item(table, item_id: str) -> dict | None:
    """Fetch a single item by its "id" key, or None if absent."""
    response = table.get_item(Key={"id": item_id})
    return response.get("Item")


def get_items_by_ids(table, ids: Iterable[str]) -> list[dict]:
    """
    Fetch items for a set of ids, skipping missing ones.

    Duplicate and empty ids are fetched once; order follows first appearance.
    """
    items = []
    seen = set()
    for item_id in ids:
        if not item_id or item_id in seen:
            continue
        seen.add(item_id)
        item = get_item(table, item_id)
        if item:
            items.append(item)
    return items


def chunked(values: list, size: int) -> Iterator[list]:
    """Yield consecutive slices of at most size elements."""
    for start in range(0, len(values), size):
        yield values[start:start + size]


def build_in_filter(attribute: str, values: list) -> tuple[str, dict[str, str], dict[str, Any]]:
    """
    Build a FilterExpression of the form "#attr IN (:v0, :v1, ...)".

    DynamoDB allows at most 100 operands; callers chunk larger lists.

    Returns:
        tuple: (filter_expression, expression_attribute_names, expression_attribute_values)
    """
    placeholders = [f":v{index}" for index in range(len(values))]
    expression = f"#{attribute} IN ({', '.join(placeholders)})"
    return expression, {f"#{attribute}": attribute}, dict(zip(placeholders, values))
