"""
Create ToolExampleQuery.

The vector extension and the HNSW index (m=16, ef_construction=64, cosine ops)
only exist on PostgreSQL; other backends store the embedding as text and are
searched in-process.
"""
import uuid

import pgvector.django.vector
from django.db import migrations, models


def create_vector_extension(apps, schema_editor):
    if schema_editor.connection.vendor == 'postgresql':
        schema_editor.execute("CREATE EXTENSION IF NOT EXISTS vector")


def create_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor == 'postgresql':
        schema_editor.execute(
            "CREATE INDEX IF NOT EXISTS tool_example_embedding_hnsw_idx "
            "ON tool_selection_toolexamplequery "
            "USING hnsw (embedding vector_cosine_ops) WITH (m = 16, ef_construction = 64)"
        )


def drop_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor == 'postgresql':
        schema_editor.execute("DROP INDEX IF EXISTS tool_example_embedding_hnsw_idx")


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.RunPython(create_vector_extension, migrations.RunPython.noop),
        migrations.CreateModel(
            name='ToolExampleQuery',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tool_name', models.CharField(db_index=True, max_length=100)),
                ('domain', models.CharField(
                    choices=[
                        ('analytics', 'analytics'), ('orders', 'orders'), ('customers', 'customers'),
                        ('products', 'products'), ('inventory', 'inventory'), ('collections', 'collections'),
                        ('discounts', 'discounts'), ('gift_cards', 'gift_cards'), ('fulfillment', 'fulfillment'),
                        ('finance', 'finance'), ('order_editing', 'order_editing'),
                    ],
                    db_index=True,
                    max_length=32,
                )),
                ('example_query', models.TextField()),
                ('embedding', pgvector.django.vector.VectorField(dimensions=1536)),
                ('is_learned', models.BooleanField(default=False)),
                ('usage_count', models.PositiveIntegerField(default=1)),
            ],
            options={
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['domain', 'tool_name'], name='tool_example_domain_tool_idx')],
                'constraints': [
                    models.UniqueConstraint(fields=('tool_name', 'example_query'), name='unique_tool_example_query'),
                ],
            },
        ),
        migrations.RunPython(create_hnsw_index, drop_hnsw_index),
    ]
