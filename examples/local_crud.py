from __future__ import annotations

import os
import uuid

from alternator_py import AlternatorClient, AlternatorConfig, SchemaRegistry


def _client(table_name: str) -> AlternatorClient:
    config = AlternatorConfig.from_env(use_aws_credential_chain=True)
    return AlternatorClient(config, registry=SchemaRegistry.from_mapping({table_name: {"PK": "pk", "SK": "sk"}}))


def main() -> None:
    table_name = f"alternator_py_example_{uuid.uuid4().hex[:12]}"
    client = _client(table_name)

    client.create_table(
        {
            "TableName": table_name,
            "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
            "AttributeDefinitions": [
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
    )

    try:
        client.put_item(table_name, {"pk": "A", "sk": "001", "value": 1})
        client.put_item(table_name, {"pk": "A", "sk": "010", "value": 10})
        client.put_item(table_name, {"pk": "A", "sk": "100", "value": 100})

        print("get:", client.get_item(table_name, {"pk": "A", "sk": "010"}))

        items = client.query(table_name, "pk = :pk AND begins_with(sk, :prefix)", {":pk": "A", ":prefix": "0"})
        print("query begins_with('0'):", items)
        print("endpoint:", os.environ.get("SCYLLA_ALTERNATOR_ENDPOINT", client.config.endpoint))
    finally:
        client.delete_table(table_name)
        client.close()


if __name__ == "__main__":
    main()
