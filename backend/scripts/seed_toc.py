"""
目录导入脚本 - 从JSON文件导入用户和章节目录

JSON 格式:
{
  "users": [{"name": "王编辑", "role": "editor"}, {"name": "作者A", "role": "writer"}],
  "chapters": [{"chapter_code": "1-1", "title": "序章", "writer": "作者A"}]
}
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chapterflow.database import get_session_factory, init_db, close_db
from chapterflow.exceptions import ChapterFlowError
from chapterflow.models.enums import Role
from chapterflow.services.lifecycle import Actor
from chapterflow.services.workflow import ChapterWorkflow
from chapterflow.user_manager import user_manager

# 导入脚本以系统管理员身份新建章节
SEED_ACTOR = Actor(user_id="seed-script", role=Role.ADMIN, name="导入脚本")


async def seed_users(users_data: list) -> dict:
    """创建不存在的用户，返回 名称 → ID 映射"""
    existing = {user.name: user for user in await user_manager.list_users()}
    for item in users_data:
        name = item["name"]
        if name in existing:
            print(f"ℹ️  用户已存在，跳过: {name}")
            continue
        user = await user_manager.create_user(name, Role(item["role"]), user_id=item.get("id"))
        existing[name] = user
        print(f"✅ 创建用户: {name} ({user.role.value})")
    return {name: user.id for name, user in existing.items()}


async def seed_chapters(chapters_data: list, name_to_id: dict) -> int:
    """按顺序创建章节，已有相同编号的章节跳过"""
    session_factory = await get_session_factory()
    created = 0
    async with session_factory() as session:
        workflow = ChapterWorkflow(session)
        existing_codes = {c.chapter_code for c in await workflow.store.list()}

        for index, item in enumerate(chapters_data, start=1):
            code = item["chapter_code"]
            if code in existing_codes:
                print(f"ℹ️  章节已存在，跳过: {code}")
                continue

            writer_name = item.get("writer")
            writer_id = name_to_id.get(writer_name) if writer_name else None
            if writer_name and writer_id is None:
                print(f"⚠️  未知作者 {writer_name}，章节 {code} 暂不分配")

            try:
                await workflow.create_chapter(
                    SEED_ACTOR,
                    chapter_code=code,
                    title=item["title"],
                    order_number=item.get("order_number", index),
                    writer_id=writer_id,
                )
            except ChapterFlowError as e:
                print(f"❌ 创建章节 {code} 失败: {e}")
                continue
            created += 1
            print(f"✅ 创建章节: {code} {item['title']}")
    return created


async def main(toc_file: Path) -> int:
    if not toc_file.exists():
        print(f"❌ 目录文件不存在: {toc_file}")
        return 1

    with open(toc_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    try:
        await init_db()
        name_to_id = await seed_users(data.get("users", []))
        created = await seed_chapters(data.get("chapters", []), name_to_id)
        print(f"\n✅ 导入完成: 新建 {created}/{len(data.get('chapters', []))} 个章节")
        return 0
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="导入书籍目录和参与者")
    parser.add_argument("toc_file", type=Path, help="目录 JSON 文件")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.toc_file)))
