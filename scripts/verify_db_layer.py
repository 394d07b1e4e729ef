import asyncio
from toolroom.database import db

async def verify():
    print("Connecting to database...")
    db.connect()

    if db.client:
        print("Client initialized")
    else:
        print("Client NOT initialized")

    if db.requisitions and db.purchase_orders and db.tools:
        print("Repositories initialized")
    else:
        print("Repositories NOT initialized")

    try:
        # Ping the database
        await db.client.admin.command('ping')
        print("Database connection successful (Ping)")
        hello = await db.client.admin.command('hello')
        if hello.get("setName"):
            print(f"Replica set '{hello['setName']}' found; transactions and change streams available")
        else:
            print("Not a replica set: PO creation and live updates will fail")
    except Exception as e:
        print(f"Database connection failed: {e}")

    db.close()

if __name__ == "__main__":
    asyncio.run(verify())
