from marshmallow import Schema, fields, validate


class MessageCreateSchema(Schema):
    message = fields.Str(required=True, validate=validate.Length(min=1, max=4000))


class MessageSchema(Schema):
    id = fields.Int(dump_only=True)
    conversationId = fields.Int(attribute="conversation_id")
    senderId = fields.Int(attribute="sender_id")
    receiverId = fields.Int(attribute="receiver_id")
    message = fields.Str(attribute="body")
    createdAt = fields.DateTime(attribute="created_at")


message_create_schema = MessageCreateSchema()
message_schema = MessageSchema()
messages_schema = MessageSchema(many=True)
