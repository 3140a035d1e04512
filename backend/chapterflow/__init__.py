"""书籍章节协作服务"""
